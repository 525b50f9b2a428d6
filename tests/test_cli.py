"""CLI tests."""
import argparse
from datetime import datetime, timedelta

import pytest

from circulation.cli import main, parse_as_of, run_sweep
from circulation.models import CopyStatus, Loan, LoanStatus


def test_parse_as_of():
    assert parse_as_of("2024-03-01T00:00:00") == datetime(2024, 3, 1)
    assert parse_as_of("2024-03-01T02:00:00+02:00") == datetime(2024, 3, 1)
    with pytest.raises(argparse.ArgumentTypeError):
        parse_as_of("yesterday")


def test_command_is_required():
    with pytest.raises(SystemExit):
        main([])


@pytest.mark.asyncio
async def test_run_sweep_overdue(engine, seed, clock, capsys):
    member = await seed.member()
    book = await seed.book()
    [copy] = await seed.copies(book, status=CopyStatus.ON_LOAN)
    loan = await seed.loan(member, copy, clock.now - timedelta(days=20), clock.now - timedelta(days=6))

    code = await run_sweep("overdue", clock.now, engine=engine)

    assert code == 0
    assert "1 loan(s) flagged overdue" in capsys.readouterr().out
    assert (await seed.get(Loan, loan.id)).status == LoanStatus.OVERDUE


@pytest.mark.asyncio
async def test_run_sweep_expired_nothing_to_do(engine, capsys):
    code = await run_sweep("expired", None, engine=engine)

    assert code == 0
    assert "0 reservation(s) expired" in capsys.readouterr().out
