from __future__ import annotations

import sys

from messagebus.version import get_version


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    info = get_version()
    if "--json" in args:
        print(info.model_dump_json())
    else:
        print(info)
    return 0


if __name__ == "__main__":
    sys.exit(main())
