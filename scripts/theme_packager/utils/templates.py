"""
Jinja2 environment for the text artifacts produced from an asset table.
"""

import re
from pathlib import Path
from typing import Optional, Union

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


def create_environment(template_dir: Optional[Union[str, Path]] = None) -> Environment:
    """
    Create the Jinja2 environment used for source emission and image maps.

    Args:
        template_dir: Directory containing Jinja2 templates

    Returns:
        Configured environment with the codec's custom filters
    """
    env = Environment(
        loader=FileSystemLoader(str(template_dir or TEMPLATE_DIR)),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        autoescape=select_autoescape(['html', 'htm', 'html.j2']),
        undefined=StrictUndefined
    )

    def c_identifier(name: str) -> str:
        """Turn an asset id into a C identifier."""
        identifier = re.sub(r'[^a-zA-Z0-9_]', '_', name)
        if not identifier or identifier[0].isdigit():
            identifier = "_" + identifier
        return identifier

    def byte_rows(data: bytes, per_row: int = 16):
        """Split bytes into rows of decimal literals."""
        return [
            ", ".join(str(b) for b in data[i:i + per_row])
            for i in range(0, len(data), per_row)
        ]

    def hex_rows(data: bytes, per_row: int = 16):
        """Split bytes into rows of python hex escapes."""
        return [
            "".join(f"\\x{b:02x}" for b in data[i:i + per_row])
            for i in range(0, len(data), per_row)
        ]

    env.filters['c_identifier'] = c_identifier
    env.filters['byte_rows'] = byte_rows
    env.filters['hex_rows'] = hex_rows
    return env
