import sys
import argparse
from sshdeploy.config import ConfigurationError, config, parse_suffixes
from sshdeploy.utils import (
    describe_exception, log_debug, log_event, make_cache_dir, resolve_cache_root
)
from sshdeploy import console


def _add_connection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--host", help="SSH host (overrides SSHDEPLOY_HOST env)")
    parser.add_argument("--port", type=int, help="SSH port (overrides SSHDEPLOY_PORT env)")
    parser.add_argument("-u", "--username", help="SSH username (overrides SSHDEPLOY_USER env)")
    parser.add_argument("-w", "--password", help="SSH password (overrides SSHDEPLOY_PASSWORD env)")
    parser.add_argument("--key", help="Path to SSH private key (overrides SSHDEPLOY_KEY_PATH env)")
    parser.add_argument("--passphrase", help="Passphrase for SSH private key (overrides SSHDEPLOY_KEY_PASSPHRASE env)")
    parser.add_argument("--no-verify-host", action="store_true", help="Disable SSH host key verification")
    parser.add_argument("--verbose", action="store_true", help="Print debug diagnostics to stderr")
    parser.add_argument("--cache-dir", help="Optional cache root override for the deployment event log")


def _add_execute_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-s", "--source", help="Local source directory (default: current directory)")
    parser.add_argument("-t", "--target", help="Absolute remote target directory")
    parser.add_argument("--pre", help="Command to run over SSH before uploading")
    parser.add_argument("--post", help="Command to run after uploading")
    parser.add_argument("--clean", action="store_true", help="Delete the target directory contents before upload")
    parser.add_argument("--exclude", help="Pipe-separated file suffixes to skip (e.g. '.ready|.pdb')")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sshdeploy",
        description="Push a build output directory to a remote host over SSH/SFTP and run it",
    )
    verbs = parser.add_subparsers(dest="verb", metavar="verb")
    verbs.required = True

    push = verbs.add_parser("push", help="Run one deployment cycle and exit")
    _add_connection_args(push)
    _add_execute_args(push)

    monitor = verbs.add_parser("monitor", help="Deploy whenever the monitor file is written")
    _add_connection_args(monitor)
    _add_execute_args(monitor)
    monitor.add_argument("-m", "--monitor", help="Trigger file, relative to the source directory")
    monitor.add_argument("--interval", type=int, help="Poll interval in seconds (1-60)")
    monitor.add_argument("--no-poll", action="store_true", help="Disable the file system monitor; deploy with N only")

    run = verbs.add_parser("run", help="Run one command over SSH and mirror its exit status")
    _add_connection_args(run)
    run.add_argument("-c", "--command", required=True, help="Command to execute")

    shell = verbs.add_parser("shell", help="Open an interactive remote shell")
    _add_connection_args(shell)
    return parser


def apply_args(args: argparse.Namespace) -> None:
    # Apply args over env vars
    if args.host: config.SSH_HOST = args.host
    if args.port: config.SSH_PORT = args.port
    if args.username: config.SSH_USER = args.username
    if args.password: config.SSH_PASSWORD = args.password
    if args.key: config.SSH_KEY_PATH = args.key
    if args.passphrase: config.SSH_KEY_PASSPHRASE = args.passphrase
    if args.no_verify_host: config.SSH_VERIFY_HOST_KEY = False
    if args.verbose: config.VERBOSE = True

    if getattr(args, "source", None): config.SOURCE_PATH = args.source
    if getattr(args, "target", None): config.TARGET_PATH = args.target
    if getattr(args, "pre", None): config.PRE_COMMAND = args.pre
    if getattr(args, "post", None): config.POST_COMMAND = args.post
    if getattr(args, "clean", False): config.CLEAN_TARGET = True
    if getattr(args, "exclude", None) is not None: config.EXCLUDE_SUFFIXES = parse_suffixes(args.exclude)

    if getattr(args, "monitor", None): config.MONITOR_FILE = args.monitor
    if getattr(args, "interval", None) is not None: config.POLL_INTERVAL = args.interval
    if getattr(args, "no_poll", False): config.POLL_ENABLED = False


def dispatch(args: argparse.Namespace) -> int:
    from sshdeploy import verbs

    if args.verb == "push":
        return verbs.execute_push(config)
    if args.verb == "monitor":
        return verbs.execute_monitor(config)
    if args.verb == "run":
        return verbs.execute_run(config, args.command)
    return verbs.execute_shell(config)


def run(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        # Pre-load from environment
        config.load_from_env()
        apply_args(args)
        config.normalize()
        config.validate_connection()
    except ConfigurationError as exc:
        console.error_line(f"Configuration error: {exc}")
        return 2

    config.CACHE_ROOT = make_cache_dir(resolve_cache_root(config.SOURCE_PATH, args.cache_dir))
    log_debug(f"verb={args.verb} host={config.SSH_HOST}:{config.SSH_PORT} cache={config.CACHE_ROOT or '-'}")

    try:
        exit_code = dispatch(args)
    except ConfigurationError as exc:
        console.error_line(f"Configuration error: {exc}")
        return 2
    except KeyboardInterrupt:
        console.write_line()
        exit_code = 130
    except Exception as exc:
        details = describe_exception(exc)
        console.error_line(f"Error - {details['type']}")
        console.error_line(f"    {details['message']}")
        log_debug(details["stack"])
        log_event("verb_failed", verb=args.verb, **details)
        exit_code = 1

    if exit_code == 0:
        console.write_line("Completed.", "green")
    else:
        console.error_line(f"Completed with errors. Exit Code {exit_code}")
    return exit_code


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
