import argparse
import logging
import signal
import sys

from colorama import Fore, Style, init

from edgeprobe import __version__
from edgeprobe.config import load_config
from edgeprobe.core.registry import default_registry
from edgeprobe.engine import PlanRunner
from edgeprobe.models import EdgeProbeError, PlanFormatError
from edgeprobe.plan import load_plan
from edgeprobe.reporting import ConsoleReporter, JsonLinesRecorder, tee

logger = logging.getLogger("edgeprobe.cli")

EXIT_OK = 0
EXIT_TEST_ERRORS = 1
EXIT_BAD_INPUT = 2


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    if not verbose:
        # per-request noise from the HTTP stack
        logging.getLogger("urllib3").setLevel(logging.ERROR)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="edgeprobe",
        description="Run declarative DoS, WAF, bot-management and API-protection probes.",
    )
    parser.add_argument("--version", action="version", version=f"edgeprobe {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    parser.add_argument("--config", help="Engine configuration file (YAML)")
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Execute a test plan")
    run.add_argument("plan", help="Plan document (JSON or YAML)")
    run.add_argument("--jsonl", help="Write request logs and summaries to this JSON-lines file")
    run.add_argument("-q", "--quiet", action="store_true", help="Do not print individual requests")
    run.add_argument("--connect-timeout", type=float, help="Connect timeout in seconds")
    run.add_argument("--read-timeout", type=float, help="Read timeout in seconds")
    run.add_argument("--no-redirects", action="store_true", help="Do not follow redirects")
    run.add_argument("--verify-tls", action="store_true", help="Verify TLS certificates")

    validate = sub.add_parser("validate", help="Check a plan without sending traffic")
    validate.add_argument("plan", help="Plan document (JSON or YAML)")

    sub.add_parser("types", help="List supported category/type pairs")
    return parser


def cmd_run(args) -> int:
    config = load_config(args.config).with_overrides(
        connect_timeout=args.connect_timeout,
        read_timeout=args.read_timeout,
        follow_redirects=False if args.no_redirects else None,
        verify_tls=True if args.verify_tls else None,
    )
    plan = load_plan(args.plan)
    reporter = ConsoleReporter(show_requests=not args.quiet)
    recorder = JsonLinesRecorder(args.jsonl) if args.jsonl else None
    runner = PlanRunner(config=config)

    stream = runner.stream(plan)

    def on_sigint(sig, frame):
        print(f"\n{Fore.YELLOW}[!] Interrupted, cancelling run...{Style.RESET_ALL}")
        stream.cancel()

    previous = signal.signal(signal.SIGINT, on_sigint)
    sink = tee(reporter, recorder.as_sink() if recorder else None)
    try:
        for event in stream:
            sink(event)
        stream.join()
    finally:
        signal.signal(signal.SIGINT, previous)
        runner.client.close()
        if recorder:
            recorder.close()

    reporter.print_summary()
    if runner.cancelled:
        return EXIT_TEST_ERRORS
    return EXIT_TEST_ERRORS if reporter.errors or stream.error else EXIT_OK


def cmd_validate(args) -> int:
    plan = load_plan(args.plan)
    invalid = 0
    for idx, spec in enumerate(plan.tests, start=1):
        label = f"[{idx}] {spec.category.value} - {spec.type.value}"
        if not spec.enabled:
            print(f"{Style.DIM}{label}: disabled{Style.RESET_ALL}")
            continue
        if default_registry.get_probe(spec.category, spec.type) is None:
            print(f"{Fore.YELLOW}{label}: unsupported combination{Style.RESET_ALL}")
            continue
        try:
            default_registry.build_config(spec)
        except EdgeProbeError as e:
            invalid += 1
            print(f"{Fore.RED}{label}: {e}{Style.RESET_ALL}")
        else:
            print(f"{Fore.GREEN}{label}: ok{Style.RESET_ALL}")
    print(f"\nPlan '{plan.name}': {len(plan.enabled_tests)} enabled, {invalid} invalid")
    return EXIT_BAD_INPUT if invalid else EXIT_OK


def cmd_types(args) -> int:
    for category, test_type in default_registry.list_probes():
        print(f"{category.value:<18} {test_type.value}")
    return EXIT_OK


COMMANDS = {
    "run": cmd_run,
    "validate": cmd_validate,
    "types": cmd_types,
}


def main(argv=None) -> int:
    init(autoreset=True)
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return EXIT_BAD_INPUT

    configure_logging(args.verbose)
    try:
        return COMMANDS[args.command](args)
    except PlanFormatError as e:
        print(f"{Fore.RED}[!] Invalid plan: {e}{Style.RESET_ALL}", file=sys.stderr)
        return EXIT_BAD_INPUT
    except (EdgeProbeError, OSError) as e:
        print(f"{Fore.RED}[!] {e}{Style.RESET_ALL}", file=sys.stderr)
        return EXIT_BAD_INPUT


if __name__ == "__main__":
    sys.exit(main())
