#!/usr/bin/env python3
# =============================================================================
# CLI Tool for the Discord Interaction Dispatcher
# =============================================================================
# Developer/admin tooling for local testing and management.
# Uses the same router, registry and executor as the Lambda handlers.
#
# Usage:
#   python tools/cli.py invoke ping
#   python tools/cli.py invoke config --option subcommand=set --option key=timezone \
#       --option value=Europe/Berlin --guild 81384788765712384
#   python tools/cli.py sign --key <seed hex> --body '{"type": 1, "id": "1"}'
#   python tools/cli.py sync-commands --application-id 1234567890
#   python tools/cli.py daemon
# =============================================================================

import argparse
import dataclasses
import json
import logging
import os
import signal
import sys
import time

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from nacl.signing import SigningKey

from handlers import build_registry
from src.executor.daemon import ExecutorDaemon
from src.executor.worker import compute_result
from src.runtime.config import load_settings
from src.runtime.deps import create_deps
from src.runtime.dispatch import Router
from src.runtime.errors import DispatcherError
from src.runtime.instances import MemoryInstanceController
from src.runtime.interaction import DISCORD_EPOCH_MS, InteractionType
from src.runtime.invoker import CommandInvoker
from src.runtime.util import jdump
from src.store.state_store import MemoryStateStore
from src.workqueue.work_queue import MemoryWorkQueue

LOCAL_APPLICATION_ID = "000000000000000000"
LOCAL_INSTANCE_ID = "i-local"


def make_snowflake() -> str:
    return str((int(time.time() * 1000) - DISCORD_EPOCH_MS) << 22)


def parse_options(pairs):
    """--option k=v pairs into a dict."""
    options = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise SystemExit(f"--option expects key=value, got {pair!r}")
        key, value = pair.split("=", 1)
        options[key] = value
    return options


def build_command_body(name, options, guild_id="", user_id="0"):
    """Interaction JSON for a slash command. `subcommand` becomes a nested option."""
    options = dict(options)
    flat = [{"type": 3, "name": k, "value": v} for k, v in options.items() if k != "subcommand"]
    if "subcommand" in options:
        command_options = [{"type": 1, "name": options["subcommand"], "options": flat}]
    else:
        command_options = flat

    body = {
        "type": InteractionType.APPLICATION_COMMAND.value,
        "id": make_snowflake(),
        "application_id": LOCAL_APPLICATION_ID,
        "token": "local-token",
        "data": {"name": name, "options": command_options},
        "user": {"id": user_id},
    }
    if guild_id:
        body["guild_id"] = guild_id
    return body


def local_deps():
    """Deps wired to in-memory adapters."""
    settings = dataclasses.replace(load_settings(), instance_id=os.environ.get("INSTANCE_ID") or LOCAL_INSTANCE_ID)
    return create_deps(
        settings,
        state_store=MemoryStateStore(),
        work_queue=MemoryWorkQueue(),
        instances=MemoryInstanceController(),
    )


def cmd_invoke(args):
    deps = local_deps()
    registry = build_registry()
    router = Router(registry, CommandInvoker(deps, work_queue=deps.work_queue))

    body = build_command_body(args.name, parse_options(args.option), guild_id=args.guild or "")
    interaction, result = router.handle(json.dumps(body).encode("utf-8"))
    output = {"response": result.to_dict()}

    # Deferred work runs inline so the follow-up can be shown
    follow_ups = []
    for item in deps.work_queue.drain():
        follow_ups.append(compute_result(item, registry, deps).to_dict())
    if follow_ups:
        output["followUps"] = follow_ups

    _print(output, args.pretty)
    return 1 if result.is_failed or any(f["status"] == "failed" for f in follow_ups) else 0


def cmd_sign(args):
    signing_key = SigningKey(bytes.fromhex(args.key))
    timestamp = args.timestamp or str(int(time.time()))
    body = args.body.encode("utf-8")
    signature = signing_key.sign(timestamp.encode("utf-8") + body).signature.hex()
    _print({
        "X-Signature-Ed25519": signature,
        "X-Signature-Timestamp": timestamp,
        "publicKey": signing_key.verify_key.encode().hex(),
    }, args.pretty)
    return 0


def cmd_sync_commands(args):
    application_id = args.application_id or os.environ.get("APPLICATION_ID", "")
    if not application_id:
        raise SystemExit("--application-id (or APPLICATION_ID) is required")

    deps = create_deps()
    registry = build_registry()
    schema = [descriptor.to_discord_schema() for descriptor in registry]
    if args.dry_run:
        _print(schema, args.pretty)
        return 0

    published = deps.discord.sync_commands(application_id, schema, guild_id=args.guild or "")
    _print({"published": [c.get("name") for c in published]}, args.pretty)
    return 0


def cmd_daemon(args):
    daemon = ExecutorDaemon(create_deps(), build_registry())

    def _stop(signum, frame):
        logging.getLogger(__name__).info(f"Signal {signum} received, stopping")
        daemon.stop()

    signal.signal(signal.SIGTERM, _stop)
    signal.signal(signal.SIGINT, _stop)
    daemon.run(max_iterations=args.iterations)
    return 0


def _print(data, pretty=False):
    if pretty:
        print(json.dumps(data, indent=2, ensure_ascii=False, default=str))
    else:
        print(jdump(data))


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Discord Interaction Dispatcher CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s invoke ping
  %(prog)s invoke status --pretty
  %(prog)s invoke config --option subcommand=get --guild 81384788765712384
  %(prog)s sign --key <32-byte seed hex> --body '{"type":1,"id":"1"}'
  %(prog)s sync-commands --application-id 1234567890 --dry-run
  %(prog)s daemon
        """
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--pretty", "-p", action="store_true", help="Pretty print output")
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "WARNING"), help="Log level")
    sub = parser.add_subparsers(dest="command")

    invoke = sub.add_parser("invoke", parents=[common], help="Run a command locally with in-memory adapters")
    invoke.add_argument("name", help="Command name")
    invoke.add_argument("--option", "-o", action="append", help="Command option key=value")
    invoke.add_argument("--guild", "-g", help="Guild id")
    invoke.set_defaults(func=cmd_invoke)

    sign = sub.add_parser("sign", parents=[common], help="Print signature headers for a body")
    sign.add_argument("--key", "-k", required=True, help="Ed25519 private seed (hex)")
    sign.add_argument("--body", "-b", required=True, help="Exact request body")
    sign.add_argument("--timestamp", "-t", help="Unix timestamp (default: now)")
    sign.set_defaults(func=cmd_sign)

    sync = sub.add_parser("sync-commands", parents=[common], help="Publish slash commands to Discord")
    sync.add_argument("--application-id", "-a", help="Discord application id")
    sync.add_argument("--guild", "-g", help="Publish to one guild only")
    sync.add_argument("--dry-run", action="store_true", help="Print the schema instead of publishing")
    sync.set_defaults(func=cmd_sync_commands)

    daemon = sub.add_parser("daemon", parents=[common], help="Run the executor daemon against the work queue")
    daemon.add_argument("--iterations", type=int, help="Stop after N polls")
    daemon.set_defaults(func=cmd_daemon)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 1

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s %(message)s")
    try:
        return args.func(args)
    except DispatcherError as e:
        print(jdump({"error": e.message, "detail": e.detail}), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
