"""Plan 9 style command line option parsing."""

from collections import deque


class ArgumentMissing(ValueError):
    """An option that needs a value was given none."""

    def __init__(self, option):
        super().__init__(f"option -{option} requires an argument")
        self.option = option


def parse_args(argv, with_values=""):
    """Split arguments (without the program name) into options and the rest.

    Returns ``(options, rest)`` where ``options`` is a list of
    ``(flag, value)`` pairs in command-line order; ``value`` is None for
    flags that take no value.  Flags listed in ``with_values`` take the
    remainder of their word or, failing that, the next argument.
    Parsing stops at the first non-option, at a lone ``-``, or after ``--``.
    """
    pending = deque(argv)
    options = []
    while pending:
        arg = pending[0]
        if not arg.startswith("-") or arg == "-":
            break
        pending.popleft()
        if arg == "--":
            break
        flags = arg[1:]
        for pos, flag in enumerate(flags):
            if flag not in with_values:
                options.append((flag, None))
                continue
            value = flags[pos + 1:]
            if not value:
                if not pending:
                    raise ArgumentMissing(flag)
                value = pending.popleft()
            options.append((flag, value))
            break
    return options, list(pending)