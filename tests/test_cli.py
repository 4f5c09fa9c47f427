import json
import sys

import pytest

from conftest import make_raffle, new_wallet, seed_entries
from solana_raffle import cli
from solana_raffle.store import Store


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("ADMIN_WALLET", "DISCORD_WEBHOOK_URL", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)
    return f"sqlite:///{tmp_path / 'cli.sqlite3'}"


def run(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["solana-raffle", *argv])
    with pytest.raises(SystemExit) as exc:
        cli.main()
    return exc.value.code


def test_init_db_and_list(monkeypatch, capsys, db_url):
    assert run(monkeypatch, "--database-url", db_url, "init-db") == 0
    assert run(monkeypatch, "--database-url", db_url, "list") == 0
    out = capsys.readouterr().out
    listing = json.loads(out[out.index("{") :])
    assert listing["raffles"] == []
    assert listing["stats"]["total_raffles"] == 0


def test_pick_winner_then_verify(monkeypatch, capsys, db_url, tmp_path):
    admin = new_wallet()
    monkeypatch.setenv("ADMIN_WALLET", admin)
    store = Store(db_url)
    store.create_all()
    raffle = make_raffle(store)
    seed_entries(store, raffle.id, [1, 2])
    store.close()

    audit = str(tmp_path / "audit.json")
    args = ["--database-url", db_url, "pick-winner", "--raffle-id", str(raffle.id)]
    assert run(monkeypatch, *args, "--wallet", admin, "--out", audit) == 0
    assert run(monkeypatch, "verify", "--audit", audit) == 0
    assert "AUDIT VERIFIED" in capsys.readouterr().out


def test_domain_error_exits_nonzero(monkeypatch, capsys, db_url):
    run(monkeypatch, "--database-url", db_url, "init-db")
    code = run(monkeypatch, "--database-url", db_url, "force-end", "--raffle-id", "1", "--wallet", new_wallet())
    assert code == 1
    assert "unauthorized" in capsys.readouterr().err


def test_airdrop_plan(monkeypatch, capsys, tmp_path):
    path = tmp_path / "wallets.txt"
    path.write_text("\n".join(new_wallet() for _ in range(16)))
    assert run(monkeypatch, "airdrop-plan", "--wallets", str(path), "--amount", "0.5") == 0
    plan = json.loads(capsys.readouterr().out)
    assert plan["recipients"] == 16
    assert [len(b["recipients"]) for b in plan["batches"]] == [15, 1]
    assert plan["lamports_each"] == 500_000_000


def test_show_unknown_raffle(monkeypatch, capsys, db_url):
    run(monkeypatch, "--database-url", db_url, "init-db")
    assert run(monkeypatch, "--database-url", db_url, "list", "--raffle-id", "42") == 1
    assert "raffle_not_found" in capsys.readouterr().err


@pytest.mark.parametrize(
    "extra",
    [["--amount", "abc"], ["--amount", "0"], ["--amount", "0.0000000001"], ["--amount", "1", "--batch-size", "0"]],
)
def test_airdrop_plan_rejects_bad_amounts(monkeypatch, capsys, tmp_path, extra):
    path = tmp_path / "wallets.txt"
    path.write_text(new_wallet())
    assert run(monkeypatch, "airdrop-plan", "--wallets", str(path), *extra) == 1
    assert "invalid_request" in capsys.readouterr().err


def test_list_history_and_user_wallet(monkeypatch, capsys, db_url):
    store = Store(db_url)
    store.create_all()
    raffle = make_raffle(store)
    wallets = seed_entries(store, raffle.id, [2, 3])
    store.close()

    assert run(monkeypatch, "--database-url", db_url, "list", "--history", "daily") == 0
    history = json.loads(capsys.readouterr().out)
    assert history["tickets"][-1] == 5

    assert run(monkeypatch, "--database-url", db_url, "list", "--user-wallet", wallets[1]) == 0
    stats = json.loads(capsys.readouterr().out)
    assert stats["total_tickets"] == 3
