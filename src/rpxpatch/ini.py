"""INI reading shared by rules files and patch templates.

Both formats are parsed into ``{section: {key: value-or-None}}`` with
section and key order preserved and key case kept as written.
"""

from __future__ import annotations

import configparser

IniMap = dict[str, dict[str, str | None]]


def _make_parser() -> configparser.ConfigParser:
    parser = configparser.ConfigParser(
        # Keys such as "$fps:int" contain ':' so only '=' separates.
        delimiters=("=",),
        comment_prefixes=("#", ";"),
        inline_comment_prefixes=(";",),
        allow_no_value=True,
        interpolation=None,
        # Nothing in these files is a real DEFAULT section.
        default_section="\x00",
    )
    parser.optionxform = str  # type: ignore[assignment,method-assign]
    return parser


def parse_ini(text: str, source: str = "<string>") -> IniMap:
    """Parse INI text into an ordered section map.

    Raises configparser.Error on structural problems; callers wrap it in
    their own error type.
    """
    parser = _make_parser()
    parser.read_string(text, source=source)
    return {
        section: {key: parser.get(section, key) for key in parser.options(section)}
        for section in parser.sections()
    }
