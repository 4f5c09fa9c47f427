from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict

from .airdrop import load_wallet_list, plan_airdrop
from .config import Settings
from .draw import to_sol
from .entries import EntryRecorder
from .errors import RaffleError
from .identity import IdentityLinker
from .models import Raffle
from .notify import DiscordNotifier, Notifier, NullNotifier
from .payments import PaymentVerifier
from .project_constants import HISTORY_PERIODS
from .raffles import RaffleAdmin, require_admin
from .rpc import RpcClient
from .schemas import (
    AirdropPlanRequest,
    CreateRaffleRequest,
    LinkWalletRequest,
    PickWinnerRequest,
    PurchaseRequest,
    parse_request,
    to_lamports,
)
from .store import Store
from .verify import verify_audit, write_audit
from .winner import WinnerSelector


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _settings(args: argparse.Namespace) -> Settings:
    return Settings.from_env(
        rpc_url_override=args.rpc_url, database_url_override=args.database_url
    )


def _notifier(settings: Settings) -> Notifier:
    if settings.discord_webhook_url:
        return DiscordNotifier(settings.discord_webhook_url, app_url=settings.app_url)
    logging.getLogger("notify").warning("DISCORD_WEBHOOK_URL not set, skipping webhooks.")
    return NullNotifier()


def _close_notifier(notifier: Notifier) -> None:
    if isinstance(notifier, DiscordNotifier):
        notifier.close()


def _raffle_json(r: Raffle) -> Dict[str, Any]:
    return {
        "id": r.id,
        "prize_name": r.prize_name,
        "prize_type": r.prize_type,
        "prize_amount": str(r.prize_amount),
        "ticket_price_sol": str(to_sol(r.ticket_price_lamports)),
        "end_time": r.end_time.isoformat(),
        "status": r.status,
        "total_tickets": r.total_tickets,
        "winner_wallet": r.winner_wallet,
        "winner_discord_id": r.winner_discord_id,
    }


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_init_db(args: argparse.Namespace) -> int:
    settings = _settings(args)
    store = Store(settings.database_url)
    try:
        store.create_all()
    finally:
        store.close()
    print(f"✅ Tables ready in {settings.database_url}")
    return 0


def cmd_create_raffle(args: argparse.Namespace) -> int:
    settings = _settings(args)
    req = parse_request(
        CreateRaffleRequest,
        {
            "wallet": args.wallet,
            "prize_name": args.prize_name,
            "prize_image_url": args.prize_image_url,
            "prize_type": args.prize_type,
            "prize_amount": args.prize_amount,
            "ticket_price": args.ticket_price,
            "end_time": args.end_time,
        },
    )
    store = Store(settings.database_url)
    notifier = _notifier(settings)
    try:
        raffle = RaffleAdmin(store, settings.admin_wallet, notifier).create_raffle(req)
    finally:
        _close_notifier(notifier)
        store.close()
    _print_json(_raffle_json(raffle))
    return 0


def cmd_link(args: argparse.Namespace) -> int:
    settings = _settings(args)
    req = parse_request(
        LinkWalletRequest,
        {
            "wallet": args.wallet,
            "signature": args.signature,
            "message": args.message.replace("\\n", "\n"),
            "discord_id": args.discord_id,
        },
    )
    store = Store(settings.database_url)
    try:
        result = IdentityLinker(store, max_age_s=settings.link_message_max_age_s).link(req)
    finally:
        store.close()
    if result.linked:
        print(f"✅ Wallet {result.wallet} linked to Discord {result.discord_id}")
    else:
        print("✅ Signature verified successfully")
    return 0


def cmd_buy(args: argparse.Namespace) -> int:
    settings = _settings(args)
    if not settings.treasury_address:
        raise SystemExit("Missing TREASURY_ADDRESS. Put it in .env or export it.")
    req = parse_request(
        PurchaseRequest,
        {
            "raffle_id": args.raffle_id,
            "wallet": args.wallet,
            "signature": args.signature,
            "quantity": args.quantity,
            "amount": args.amount,
            "channel": args.channel,
        },
    )
    store = Store(settings.database_url)
    rpc = RpcClient(settings.rpc_url, timeout_s=args.timeout)
    try:
        verifier = PaymentVerifier(
            store,
            rpc,
            treasury_address=settings.treasury_address,
            commitment=settings.rpc_commitment,
            strict=settings.strict_payment_check,
        )
        entry = EntryRecorder(store).purchase(verifier, req)
    finally:
        rpc.close()
        store.close()
    print(f"✅ Success! Recorded {entry.quantity} tickets for raffle {entry.raffle_id}.")
    return 0


def cmd_close_expired(args: argparse.Namespace) -> int:
    settings = _settings(args)
    store = Store(settings.database_url)
    try:
        closed = RaffleAdmin(store, settings.admin_wallet).close_expired()
    finally:
        store.close()
    print(f"Closed {closed} expired raffle(s).")
    return 0


def cmd_force_end(args: argparse.Namespace) -> int:
    settings = _settings(args)
    store = Store(settings.database_url)
    try:
        ended = RaffleAdmin(store, settings.admin_wallet).force_end(args.raffle_id, args.wallet)
    finally:
        store.close()
    print(f"Raffle {args.raffle_id} {'ended' if ended else 'was already ended'}.")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    settings = _settings(args)
    store = Store(settings.database_url)
    try:
        admin = RaffleAdmin(store, settings.admin_wallet)
        if args.history is not None:
            _print_json(store.revenue_history(args.history))
        elif args.user_wallet is not None:
            _print_json(store.user_stats(args.user_wallet))
        elif args.raffle_id is not None:
            _print_json(_raffle_json(admin.get(args.raffle_id)))
        elif args.winners:
            _print_json({"raffles": [_raffle_json(r) for r in admin.list_winners()]})
        else:
            listing = admin.list_active()
            _print_json(
                {
                    "raffles": [_raffle_json(r) for r in listing["raffles"]],
                    "stats": listing["stats"],
                }
            )
    finally:
        store.close()
    return 0


def cmd_pick_winner(args: argparse.Namespace) -> int:
    settings = _settings(args)
    req = parse_request(PickWinnerRequest, {"raffle_id": args.raffle_id, "wallet": args.wallet})
    store = Store(settings.database_url)
    notifier = _notifier(settings)
    try:
        result = WinnerSelector(store, settings.admin_wallet, notifier).pick_winner(
            req.raffle_id, req.wallet
        )
    finally:
        _close_notifier(notifier)
        store.close()
    write_audit(result, args.out)

    print("========================================")
    print(f"🎟️ RAFFLE #{result.raffle_id} DRAW")
    print("========================================")
    print(f"Total tickets : {result.total_tickets}")
    print(f"Entrants      : {len(result.entrants)}")
    print(f"Draw point    : {result.draw_point!r}")
    print("----------------------------------------")
    print("🏆 WINNER")
    print(f"Name          : {result.winner_name}")
    print(f"Wallet        : {result.winner.wallet}")
    print(f"Discord ID    : {result.winner.discord_id}")
    print(f"Entry         : {result.winner.payment_reference} ({result.winner.quantity} tickets)")
    print("----------------------------------------")
    print(f"🧾 Wrote audit: {args.out}")
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    result = verify_audit(args.audit)
    print("✅ AUDIT VERIFIED")
    print(f"Raffle        : {result['raffle_id']}")
    print(f"Winner        : {result['winner']}")
    print(f"Winning entry : {result['winning_entry']}")
    print(f"Total Tickets : {result['total_tickets']}")
    print(f"Draw point    : {result['draw_point']!r}")
    return 0


def cmd_reconcile(args: argparse.Namespace) -> int:
    settings = _settings(args)
    store = Store(settings.database_url)
    try:
        total = EntryRecorder(store).reconcile(args.raffle_id)
    finally:
        store.close()
    print(f"Raffle {args.raffle_id} total tickets: {total}")
    return 0


def cmd_airdrop_plan(args: argparse.Namespace) -> int:
    req = parse_request(
        AirdropPlanRequest, {"amount": args.amount, "batch_size": args.batch_size}
    )
    wallets = load_wallet_list(args.wallets)
    batches = plan_airdrop(wallets, req.amount, batch_size=req.batch_size)
    _print_json(
        {
            "recipients": len(wallets),
            "lamports_each": to_lamports(req.amount),
            "batches": [
                {"index": b.index, "total_lamports": b.total_lamports, "recipients": b.recipients}
                for b in batches
            ],
        }
    )
    return 0


def cmd_airdrop_notify(args: argparse.Namespace) -> int:
    settings = _settings(args)
    require_admin(args.wallet, settings.admin_wallet)
    notifier = _notifier(settings)
    try:
        notifier.airdrop_sent(args.amount, args.token_type, args.recipients, args.signature)
    finally:
        _close_notifier(notifier)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="solana-raffle",
        description="SOL raffle backend: ticket payments, wallet linking and weighted draws.",
    )
    p.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    p.add_argument("--rpc-url", default=None, help="Override RPC URL (else use env).")
    p.add_argument("--database-url", default=None, help="Override DATABASE_URL.")
    p.add_argument("--timeout", type=float, default=30.0, help="RPC timeout seconds.")

    sub = p.add_subparsers(dest="cmd", required=True)

    i = sub.add_parser("init-db", help="Create the raffle tables.")
    i.set_defaults(func=cmd_init_db)

    c = sub.add_parser("create-raffle", help="Create a raffle (admin).")
    c.add_argument("--wallet", required=True, help="Admin wallet.")
    c.add_argument("--prize-name", required=True)
    c.add_argument("--prize-image-url", default=None)
    c.add_argument("--prize-type", default="sol", help="sol | nft | token")
    c.add_argument("--prize-amount", default="0")
    c.add_argument("--ticket-price", required=True, help="Ticket price in SOL.")
    c.add_argument("--end-time", required=True, help="ISO 8601 end time (UTC if no offset).")
    c.set_defaults(func=cmd_create_raffle)

    lk = sub.add_parser("link", help="Verify a signed message and link wallet to Discord.")
    lk.add_argument("--wallet", required=True)
    lk.add_argument("--signature", required=True, help="Base58 signature of the message.")
    lk.add_argument("--message", required=True, help="Signed message (\\n for newlines).")
    lk.add_argument("--discord-id", type=int, default=None)
    lk.set_defaults(func=cmd_link)

    b = sub.add_parser("buy", help="Verify a ticket payment and record it.")
    b.add_argument("--raffle-id", required=True, type=int)
    b.add_argument("--wallet", required=True, help="Paying wallet.")
    b.add_argument("--signature", required=True, help="Transaction signature.")
    b.add_argument("--quantity", required=True, type=int)
    b.add_argument("--amount", required=True, help="Total paid in SOL.")
    b.add_argument("--channel", default="cli")
    b.set_defaults(func=cmd_buy)

    ce = sub.add_parser("close-expired", help="End every raffle past its end time.")
    ce.set_defaults(func=cmd_close_expired)

    fe = sub.add_parser("force-end", help="End a raffle now (admin).")
    fe.add_argument("--raffle-id", required=True, type=int)
    fe.add_argument("--wallet", required=True, help="Admin wallet.")
    fe.set_defaults(func=cmd_force_end)

    ls = sub.add_parser("list", help="List active raffles and stats.")
    ls.add_argument("--winners", action="store_true", help="List recent winners instead.")
    ls.add_argument("--raffle-id", type=int, default=None, help="Show a single raffle.")
    ls.add_argument(
        "--history",
        choices=sorted(HISTORY_PERIODS),
        default=None,
        help="Revenue and tickets per day, week or month.",
    )
    ls.add_argument("--user-wallet", default=None, help="Purchase totals for one wallet.")
    ls.set_defaults(func=cmd_list)

    pw = sub.add_parser("pick-winner", help="Draw the winner and write an audit JSON (admin).")
    pw.add_argument("--raffle-id", required=True, type=int)
    pw.add_argument("--wallet", required=True, help="Admin wallet.")
    pw.add_argument("--out", default="audit.json", help="Audit output JSON path.")
    pw.set_defaults(func=cmd_pick_winner)

    v = sub.add_parser("verify", help="Verify an existing audit.json deterministically.")
    v.add_argument("--audit", required=True, help="Path to audit.json.")
    v.set_defaults(func=cmd_verify)

    rc = sub.add_parser("reconcile", help="Recompute a raffle's ticket count from its entries.")
    rc.add_argument("--raffle-id", required=True, type=int)
    rc.set_defaults(func=cmd_reconcile)

    ap = sub.add_parser("airdrop-plan", help="Split a wallet list into transfer batches.")
    ap.add_argument("--wallets", required=True, help="Text file with one wallet per line.")
    ap.add_argument("--amount", required=True, help="SOL per recipient.")
    ap.add_argument("--batch-size", type=int, default=15)
    ap.set_defaults(func=cmd_airdrop_plan)

    an = sub.add_parser("airdrop-notify", help="Announce a sent airdrop (admin).")
    an.add_argument("--wallet", required=True, help="Admin wallet.")
    an.add_argument("--amount", required=True)
    an.add_argument("--token-type", default="SOL")
    an.add_argument("--recipients", required=True, type=int)
    an.add_argument("--signature", required=True)
    an.set_defaults(func=cmd_airdrop_notify)

    return p


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    setup_logging(args.verbose)
    try:
        code = args.func(args)
    except RaffleError as e:
        print(f"❌ {e.code}: {e}", file=sys.stderr)
        if e.retryable:
            print("   (temporary; try again shortly)", file=sys.stderr)
        code = 1
    raise SystemExit(code)
