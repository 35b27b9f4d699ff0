"""Input validation for CLI arguments."""
import sys
from typing import Iterable, List

from secretsync.secrets.domains.errors import InputValidationError
from secretsync.secrets.workflows.invocation import validate_secret_name


def exit_with_validation_error(error: InputValidationError) -> None:
    """
    Print a validation error with guidance and exit.

    Raises:
        SystemExit with code 2
    """
    print(f"Error: {error}", file=sys.stderr)
    if error.hint:
        print(f"\n{error.hint}", file=sys.stderr)
    if "secret name" in str(error).lower():
        print("\nExamples of valid names:", file=sys.stderr)
        print("  ✓ REGISTRY_PASSWORD", file=sys.stderr)
        print("  ✓ POSTGRES_PASSWORD", file=sys.stderr)
        print("  ✓ GIT_APP_ID", file=sys.stderr)
        print("\nExamples of invalid names:", file=sys.stderr)
        print("  ✗ registry_password (lowercase)", file=sys.stderr)
        print("  ✗ API-KEY (contains hyphen)", file=sys.stderr)
        print("  ✗ DB.PASS (contains dot)", file=sys.stderr)
    sys.exit(2)


def validate_secret_names(names: Iterable[str]) -> List[str]:
    """
    Validate every name, exiting with code 2 on the first invalid one.

    Raises:
        SystemExit with code 2 if validation fails
    """
    names = list(names)
    try:
        if not names:
            raise InputValidationError("No secret names given", hint="Pass one or more secret names")
        for name in names:
            validate_secret_name(name)
    except InputValidationError as e:
        exit_with_validation_error(e)
    return names
