"""CLI entrypoint for secretsync."""
import sys
import argparse
import logging
import shutil
from pathlib import Path

from secretsync import __version__
from secretsync.secrets.domains.errors import InputValidationError, PresenceCheckFailure
from .validators import exit_with_validation_error, validate_secret_names

logger = logging.getLogger(__name__)


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)


def cmd_version(args):
    """Show version information."""
    print(f"secretsync {__version__}")


def cmd_auth_check(args):
    """Check GitHub CLI authentication and encryption support."""
    from secretsync.secrets.domains.github_client import GitHubClient

    print("Checking secretsync prerequisites...\n")

    if shutil.which("gh") is None:
        print("Error: GitHub CLI (gh) not found")
        print("  Install from: https://cli.github.com/")
        sys.exit(1)
    print("Success: GitHub CLI installed")

    try:
        import nacl.public  # noqa: F401
        print("Success: PyNaCl installed")
    except ImportError:
        print("Error: PyNaCl not installed")
        print("  Install with: pip install pynacl")
        sys.exit(1)

    if GitHubClient().auth_status():
        print("Success: gh authenticated for github.com")
    else:
        print("Error: gh is not authenticated")
        print("  Authenticate with: gh auth login (or set GH_TOKEN)")
        sys.exit(1)

    print("\nSuccess: All checks passed")


def cmd_config_set_path(args):
    """Set config file path preference."""
    from secretsync.secrets.domains.preferences import set_preference

    config_path = Path(args.path).resolve()

    if not config_path.exists():
        print(f"Error: Config file does not exist: {config_path}", file=sys.stderr)
        sys.exit(1)

    if not config_path.is_file():
        print(f"Error: Path is not a file: {config_path}", file=sys.stderr)
        sys.exit(1)

    set_preference("config_path", str(config_path))
    print(f"Config path set to: {config_path}")


def cmd_config_show(args):
    """Show current config file path."""
    from secretsync.secrets.domains.config_loader import default_config_path
    from secretsync.secrets.domains.preferences import get_preference

    config_path_pref = get_preference("config_path")

    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            print(f"Config path: {config_path}")
        else:
            print(f"Config path (from preference, but file not found): {config_path}")
        print("Source: preference")
    else:
        default_config = default_config_path()
        print(f"Config path: {default_config}")
        if default_config.exists():
            print("Source: default")
        else:
            print("Source: default (file not found, built-in defaults apply)")


def cmd_config_clear(args):
    """Clear config path preference."""
    from secretsync.secrets.domains.config_loader import default_config_path
    from secretsync.secrets.domains.preferences import clear_preference

    clear_preference("config_path")
    print(f"Config path preference cleared. Will use default: {default_config_path()}")


def cmd_config_init(args):
    """Interactive config setup."""
    from secretsync.secrets.domains.config_loader import default_config_path
    from secretsync.secrets.domains.preferences import set_preference

    default_config = default_config_path()

    print("=== secretsync Configuration Setup ===\n")
    print(f"Default config location: {default_config}\n")

    if default_config.exists():
        print(f"Configuration file already exists at: {default_config}")
        response = input("Do you want to use a different config file? (y/N): ").strip().lower()
        if response != 'y':
            print(f"\nUsing existing config at: {default_config}")
            return

    print("Choose an option:")
    print("1. Write a starter config to the default location")
    print("2. Point to an existing config file at a different location")
    print("3. Cancel (manually create config file later)")

    choice = input("\nEnter choice (1-3): ").strip()

    if choice == "1":
        source_repo = input("Source repository (org/name) holding the canonical secrets: ").strip()
        default_config.parent.mkdir(parents=True, exist_ok=True)
        default_config.write_text(
            "github:\n"
            f"  source_repo: {source_repo or 'my-org/devops'}\n"
            "  workflow: propagate-secrets.yml\n"
            "policy:\n"
            "  default: provisioning-only\n"
            "  provisioning_only: []\n"
            "  syncable: []\n"
        )
        print(f"\nStarter config written to: {default_config}")

    elif choice == "2":
        config_path = input("Enter path to config file: ").strip()
        config_file = Path(config_path).expanduser().resolve()

        if not config_file.exists():
            print(f"Error: File not found: {config_file}", file=sys.stderr)
            sys.exit(1)

        set_preference("config_path", str(config_file))
        print(f"\nConfig path set to: {config_file}")

    elif choice == "3":
        print("\nSetup cancelled.")
        print(f"Create your config file at: {default_config}")
        print("Or use: secretsync config set-path <path>")

    else:
        print("Invalid choice.", file=sys.stderr)
        sys.exit(2)


def cmd_policy_show(args):
    """Print the effective protection policy."""
    from secretsync.secrets.domains.config_loader import load_config
    from secretsync.secrets.domains.policy import policy_from_config

    policy = policy_from_config(load_config())
    for name, protection in policy.table():
        print(f"{name}: {protection.value}")
    print(f"(unclassified names: {policy.default.value})")


def cmd_policy_classify(args):
    """Print the protection class of each name."""
    from secretsync.secrets.domains.config_loader import load_config
    from secretsync.secrets.domains.policy import policy_from_config

    names = validate_secret_names(args.names)
    policy = policy_from_config(load_config())
    for name in names:
        protection = policy.classify(name)
        suffix = "" if policy.is_classified(name) else " (unclassified, default)"
        print(f"{name}: {protection.value}{suffix}")


def cmd_secrets_check(args):
    """Check required secrets in the current repository."""
    from secretsync.secrets.workflows.presence_check import check_and_sync_secrets

    names = validate_secret_names(args.names)
    try:
        check_and_sync_secrets(*names, ci=args.ci, request=args.request_sync)
    except PresenceCheckFailure as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def cmd_secrets_sync(args):
    """Sync secrets from this repository's catalog into a target repository."""
    from secretsync.secrets.domains.config_loader import load_config
    from secretsync.secrets.domains.github_client import GitHubClient
    from secretsync.secrets.workflows.invocation import build_sync_request, request_from_event
    from secretsync.secrets.workflows.sync_dispatcher import dispatcher_from_config

    try:
        if args.from_event:
            request = request_from_event()
        else:
            request = build_sync_request(args.target_repo, args.secrets)
    except InputValidationError as e:
        exit_with_validation_error(e)

    config = load_config()
    store = GitHubClient(timeout=config["sync"]["write_timeout"])
    dispatcher = dispatcher_from_config(config, store, dry_run=args.dry_run)

    print(f"Syncing to {request.target_repo}: {', '.join(request.requested_names)}")
    report = dispatcher.dispatch(request)
    print(report.render())

    sys.exit(1 if report.has_failures else 0)


def main():
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors (failed writes, missing secrets in CI, platform errors, etc.)
        2 - Usage errors (invalid arguments, invalid secret name or repository format, etc.)
    """
    parser = argparse.ArgumentParser(
        prog="secretsync",
        description="secretsync - sync deployment secrets from a source repository into service repositories",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (failed writes, missing secrets in CI, platform errors, etc.)
  2 - Usage error (invalid arguments, invalid secret name or repository format, etc.)

Environment variables:
  SECRETSYNC_SOURCE_REPO      - Source repository (overrides config file)
  SECRETSYNC_SECRETS_CONTEXT  - JSON secrets context of the source workflow
  GCP_PROJECT                 - GCP project ID for the gcp catalog backend
  GITHUB_ACTIONS / CI         - Enable CI behaviour for 'secrets check'

Configuration:
  Default location: ~/.config/secretsync/config.yml (optional)
  Custom path: Set with 'secretsync config set-path <path>'
  View current: Run 'secretsync config show'
        """
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log output (-v info, -vv debug)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "version",
        help="Show version information",
        description="Display the current version of secretsync"
    )

    auth_parser = subparsers.add_parser(
        "auth",
        help="Authentication checks",
        description="Verify GitHub CLI authentication"
    )
    auth_subparsers = auth_parser.add_subparsers(dest="auth_command")
    auth_subparsers.add_parser(
        "check",
        help="Check gh authentication",
        description="Verify that gh is installed and authenticated and that PyNaCl is available"
    )

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Manage secretsync configuration"
    )
    config_subparsers = config_parser.add_subparsers(dest="config_command")

    config_set_path_parser = config_subparsers.add_parser(
        "set-path",
        help="Set config file path",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="""
Set the configuration file path preference.

This stores the absolute path to your config file in:
~/.config/secretsync/preferences.json

The path will be validated before storing.
        """
    )
    config_set_path_parser.add_argument("path", help="Path to config file")

    config_subparsers.add_parser(
        "show",
        help="Show current config path",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="""
Display the current configuration file path and its source.

Sources:
  - preference: Path set via 'config set-path'
  - default: Default XDG location (~/.config/secretsync/config.yml)
        """
    )
    config_subparsers.add_parser(
        "clear",
        help="Clear config path preference",
        description="Remove the config path preference; the default location is used afterwards"
    )
    config_subparsers.add_parser(
        "init",
        help="Interactive config setup",
        description="Interactive setup wizard for secretsync configuration"
    )

    # policy command
    policy_parser = subparsers.add_parser(
        "policy",
        help="Protection policy",
        description="Inspect which secrets may be synced"
    )
    policy_subparsers = policy_parser.add_subparsers(dest="policy_command")
    policy_subparsers.add_parser(
        "show",
        help="Show the effective policy table",
        description="List every classified secret name with its protection class"
    )
    classify_parser = policy_subparsers.add_parser(
        "classify",
        help="Classify secret names",
        description="Print the protection class of each given name"
    )
    classify_parser.add_argument("names", nargs="+", metavar="NAME", help="Secret names")

    # secrets command
    secrets_parser = subparsers.add_parser(
        "secrets",
        help="Secret checks and sync",
        description="Check and sync repository secrets"
    )
    secrets_subparsers = secrets_parser.add_subparsers(dest="secrets_command")

    check_parser = secrets_subparsers.add_parser(
        "check",
        help="Check required secrets in the current repository",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="""
Check that the current repository has every required secret.

The repository is taken from GITHUB_REPOSITORY or 'gh repo view'. Only secret
names are listed; values are never read.

Exit codes:
  0 - All secrets present, or missing outside CI (warning only)
  1 - Secrets missing in CI
  2 - Invalid secret name format
        """
    )
    check_parser.add_argument("names", nargs="+", metavar="NAME", help="Required secret names")
    ci_group = check_parser.add_mutually_exclusive_group()
    ci_group.add_argument(
        "--ci", dest="ci", action="store_true", default=None,
        help="Fail when secrets are missing (default: detected from GITHUB_ACTIONS/CI)"
    )
    ci_group.add_argument(
        "--no-ci", dest="ci", action="store_false",
        help="Only warn when secrets are missing"
    )
    check_parser.set_defaults(ci=None)
    check_parser.add_argument(
        "--request-sync",
        action="store_true",
        help="Ask the source repository to sync missing secrets and wait for them"
    )

    sync_parser = secrets_subparsers.add_parser(
        "sync",
        help="Sync secrets into a target repository",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="""
Copy secrets from this execution context's catalog into a target repository.

Run from the source repository's workflow. Provisioning-only secrets are
never copied. Each name is reported as synced, skipped, warning or failed.

Exit codes:
  0 - No writes failed (skips and warnings are allowed)
  1 - At least one write failed
  2 - Invalid target repository or secret names
        """
    )
    sync_parser.add_argument("--target-repo", help="Target repository (org/name)")
    sync_parser.add_argument("--secrets", help="Secret names separated by spaces or commas")
    sync_parser.add_argument(
        "--from-event",
        action="store_true",
        help="Read target_repo and secrets from the triggering GitHub event (GITHUB_EVENT_PATH)"
    )
    sync_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Classify and resolve only, write nothing"
    )

    args = parser.parse_args()
    _configure_logging(args.verbose)

    if not args.command:
        parser.print_help()
        sys.exit(2)

    try:
        if args.command == "version":
            cmd_version(args)
        elif args.command == "auth":
            if args.auth_command == "check":
                cmd_auth_check(args)
            else:
                auth_parser.print_help()
                sys.exit(2)
        elif args.command == "config":
            if args.config_command == "set-path":
                cmd_config_set_path(args)
            elif args.config_command == "show":
                cmd_config_show(args)
            elif args.config_command == "clear":
                cmd_config_clear(args)
            elif args.config_command == "init":
                cmd_config_init(args)
            else:
                config_parser.print_help()
                sys.exit(2)
        elif args.command == "policy":
            if args.policy_command == "show":
                cmd_policy_show(args)
            elif args.policy_command == "classify":
                cmd_policy_classify(args)
            else:
                policy_parser.print_help()
                sys.exit(2)
        elif args.command == "secrets":
            if args.secrets_command == "check":
                cmd_secrets_check(args)
            elif args.secrets_command == "sync":
                cmd_secrets_sync(args)
            else:
                secrets_parser.print_help()
                sys.exit(2)
        else:
            parser.print_help()
            sys.exit(2)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
