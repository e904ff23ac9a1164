# lance_node/__main__.py
"""
Command line for maintainer-side operations:

    python -m lance_node keygen   [--project-id N] [--dispute-id N] [--out DIR]
    python -m lance_node setup    [--maintainer G...] [--project-id N] [--dispute-id N] [--out DIR]
    python -m lance_node tally    DISPUTE_ID --keyfile PATH
    python -m lance_node finalize DISPUTE_ID (--keyfile PATH | --tallies a,b,c --seeds x,y,z)
                                  [--maintainer G...] [--dry-run]
    python -m lance_node serve    [--host H] [--port P]

Env toggles:
  LANCE_CONFIG=path.yaml        -> settings file (default lance_node/lance_config.yaml)
  LANCE_MAINTAINER_ADDRESS=G... -> maintainer used by setup and finalize
  LANCE_RPC_URL / LANCE_SIGNER_URL -> ledger gateway / signing relay

Exit status: 0 ok, 1 operation failed, 2 usage error.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from .errors import LanceError
from .logging_setup import configure_logging
from .settings import get_settings


def _u128_list(raw: str) -> List[int]:
    try:
        values = [int(x.strip()) for x in raw.split(",") if x.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected comma separated integers, got {raw!r}") from None
    if len(values) != 3:
        raise argparse.ArgumentTypeError("exactly three values are required")
    return values


def parse_args(argv=None):
    s = get_settings()
    p = argparse.ArgumentParser(
        prog="lance-node",
        description="Anonymous dispute voting: key generation, tally and finalize",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    kg = sub.add_parser("keygen", help="Generate and store a ballot-encryption key pair")
    kg.add_argument("--project-id", type=int, default=s.voting.project_id)
    kg.add_argument("--dispute-id", type=int, default=None)
    kg.add_argument("--out", default=str(s.KEYS_DIR), help="Directory for the key file")

    su = sub.add_parser("setup", help="Generate a key pair and publish its public key on the ledger")
    su.add_argument("--maintainer", default=s.voting.maintainer_address)
    su.add_argument("--project-id", type=int, default=s.voting.project_id)
    su.add_argument("--dispute-id", type=int, default=None)
    su.add_argument("--out", default=str(s.KEYS_DIR), help="Directory for the key file")

    t = sub.add_parser("tally", help="Decrypt and aggregate the ballots of a dispute")
    t.add_argument("dispute_id", type=int)
    t.add_argument("--keyfile", required=True)

    f = sub.add_parser("finalize", help="Submit the verified reveal (execute) for a dispute")
    f.add_argument("dispute_id", type=int)
    f.add_argument("--maintainer", default=s.voting.maintainer_address)
    f.add_argument("--keyfile", help="Tally with this key file first")
    f.add_argument("--tallies", type=_u128_list)
    f.add_argument("--seeds", type=_u128_list)
    f.add_argument("--dry-run", action="store_true", help="Only simulate the ledger proof check")

    sv = sub.add_parser("serve", help="Run the HTTP API")
    sv.add_argument("--host", default=s.server.host)
    sv.add_argument("--port", type=int, default=s.server.port)

    args = p.parse_args(argv)
    if args.cmd == "finalize":
        have_values = args.tallies is not None and args.seeds is not None
        if not args.keyfile and not have_values:
            p.error("finalize needs --keyfile or both --tallies and --seeds")
        if args.keyfile and (args.tallies is not None or args.seeds is not None):
            p.error("--keyfile cannot be combined with --tallies/--seeds")
    return args


def _print(obj) -> None:
    print(json.dumps(obj, indent=2))


def cmd_keygen(args) -> int:
    from .voting_runtime.keys import KeyManager

    km = KeyManager()
    kp = km.generate(args.project_id, args.dispute_id)
    path = km.persist(km.serialize(kp), args.out)
    _print({"ok": True, "keyfile": str(path), "publicKey": kp.public_key})
    return 0


async def cmd_setup(args) -> int:
    from .service import VotingService

    svc = VotingService.from_settings(get_settings())
    try:
        kp, path = await svc.setup_voting(args.maintainer, args.project_id, args.dispute_id, out_dir=args.out)
    finally:
        await svc.aclose()
    _print({"ok": True, "keyfile": str(path), "projectId": kp.project_id, "publicKey": kp.public_key})
    return 0


async def _tally(svc, dispute_id: int, keyfile: str):
    result = await svc.tally(dispute_id, keyfile)
    for x in result.excluded:
        print(f"excluded {x.address}: {x.reason}", file=sys.stderr)
    return result


async def cmd_tally(args) -> int:
    from .service import VotingService

    svc = VotingService.from_settings(get_settings())
    try:
        result = await _tally(svc, args.dispute_id, args.keyfile)
    finally:
        await svc.aclose()
    tallies, seeds = result.as_strings()
    _print({"ok": True, "dispute_id": args.dispute_id, "tallies": tallies, "seeds": seeds})
    return 0


async def cmd_finalize(args) -> int:
    from .service import VotingService

    svc = VotingService.from_settings(get_settings())
    try:
        if args.keyfile:
            result = await _tally(svc, args.dispute_id, args.keyfile)
            tallies, seeds = list(result.tallies), list(result.seeds)
        else:
            tallies, seeds = args.tallies, args.seeds

        if args.dry_run:
            ok = await svc.proofs.verify(args.dispute_id, tallies, seeds)
            _print({"ok": ok, "dispute_id": args.dispute_id, "dry_run": True})
            return 0 if ok else 1

        dispute = await svc.proofs.finalize(args.maintainer, args.dispute_id, tallies, seeds)
        _print({"ok": True, "dispute": svc.describe(dispute)})
        return 0
    finally:
        await svc.aclose()


def cmd_serve(args) -> int:
    import uvicorn

    from .lance_api import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(get_settings().logging)
    try:
        if args.cmd == "keygen":
            return cmd_keygen(args)
        if args.cmd == "setup":
            return asyncio.run(cmd_setup(args))
        if args.cmd == "tally":
            return asyncio.run(cmd_tally(args))
        if args.cmd == "finalize":
            return asyncio.run(cmd_finalize(args))
        return cmd_serve(args)
    except LanceError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
