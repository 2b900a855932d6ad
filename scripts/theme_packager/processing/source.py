"""
Source emission: the image cache of a table as compilable data literals,
plus a human-readable definitions listing.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

from ..assets.table import AssetTable
from ..config import PackagerConfig
from ..utils.atomic import write_text_atomic
from ..utils.templates import create_environment
from .cache import CacheImageCodec

logger = logging.getLogger(__name__)

# dialect -> (template, file extension)
DIALECTS = {
    "c": ("theme_source.c.j2", ".h"),
    "python": ("theme_source.py.j2", ".py"),
}

SOURCE_BASENAME = "ThemeAsCode"
DEFINITIONS_FILE = "ThemeDefinitions.txt"


class SourceEmitter:
    """Renders an asset table as embeddable source data."""

    def __init__(self, config: Optional[PackagerConfig] = None,
                 template_dir: Optional[Union[str, Path]] = None):
        self.config = config or PackagerConfig()
        self.codec = CacheImageCodec(self.config)
        self.env = create_environment(template_dir)

    def emit_source(self, table: AssetTable, dialect: Optional[str] = None) -> str:
        """
        Render the image cache encoding of `table` as byte array literals.

        The output depends only on the table contents, so an unchanged table
        always produces identical text.

        Raises:
            ValueError: If the dialect is unknown
            MalformedAssetError: If a bitmap cannot be packed
        """
        dialect = dialect or self.config.source_dialect
        template_name, extension = self._dialect(dialect)

        atlas_bytes, layout_bytes = self.codec.encode(table)
        width, height, _, _ = self.codec.parse_layout(layout_bytes)

        text = self.env.get_template(template_name).render(
            file_name=f"{SOURCE_BASENAME}{extension}",
            image_count=len(table.bitmaps()),
            color_count=len(table.colors()),
            width=width,
            height=height,
            prefix=self.config.cache_name,
            atlas=atlas_bytes,
            layout=layout_bytes
        )
        logger.debug(f"Emitted {dialect} source: {len(atlas_bytes)} atlas bytes, {len(layout_bytes)} layout bytes")
        return text

    def emit_definitions(self, table: AssetTable) -> str:
        """Render one definition line per asset, ordered by asset id."""
        layout = self.codec.layout_engine.pack(table.bitmaps())
        return self.env.get_template("theme_definitions.txt.j2").render(
            images=sorted(layout.entries, key=lambda entry: entry.asset_id),
            colors=sorted(table.colors(), key=lambda color: color.asset_id),
            width=layout.width,
            height=layout.height
        )

    def write(self, table: AssetTable, directory: Union[str, Path],
              dialect: Optional[str] = None) -> List[Path]:
        """
        Write the source listing and the definitions listing into `directory`.

        Returns:
            Paths of the written files
        """
        dialect = dialect or self.config.source_dialect
        _, extension = self._dialect(dialect)
        directory = Path(directory)

        source = self.emit_source(table, dialect)
        definitions = self.emit_definitions(table)

        written = [
            write_text_atomic(directory / f"{SOURCE_BASENAME}{extension}", source),
            write_text_atomic(directory / DEFINITIONS_FILE, definitions),
        ]
        logger.info(f"Wrote theme source to {written[0]} and definitions to {written[1]}")
        return written

    def _dialect(self, dialect: str):
        try:
            return DIALECTS[dialect]
        except KeyError:
            raise ValueError(f"Unknown source dialect '{dialect}', expected one of {sorted(DIALECTS)}")
