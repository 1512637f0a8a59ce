import sys
from pathlib import Path

import yaml

from xpr.xpr_runtime import RequestRunner
from xpr.xpr_printer import Printer


def run_request_file(file_path: str, raw_args) -> int:
    """Run a request file non-interactively and return the exit status."""
    runner = RequestRunner()
    printer = Printer()
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        return 1
    try:
        args = [yaml.safe_load(a) for a in raw_args]
    except yaml.YAMLError as e:
        print(f"Error: bad argument: {e}", file=sys.stderr)
        return 1
    result = runner.handle_request(source, *args)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        return 1
    print(printer.pformat(result.value))
    return 0


def repl(stdin=None) -> int:
    stdin = stdin or sys.stdin
    print("xpr REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    runner = RequestRunner()
    printer = Printer()

    while True:
        sys.stdout.write(">> ")
        sys.stdout.flush()
        raw = stdin.readline()
        if raw == "":
            print("\nExiting.")
            break
        line = raw.strip()

        if not line:
            continue
        if line == "exit":
            break

        result = runner.handle_request(line)
        if result.status == 'error':
            print(result.format_error(), file=sys.stderr)
            continue
        print(printer.pformat(result.value))
    return 0


def main(argv=None) -> int:
    """Run a request file when provided, otherwise start the interactive REPL."""
    argv = sys.argv[1:] if argv is None else argv
    if argv and not argv[0].startswith("-"):
        return run_request_file(argv[0], argv[1:])
    return repl()


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nExiting.")
