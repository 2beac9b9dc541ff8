"""Write metrics once to a node_exporter textfile, or to stdout."""

from __future__ import annotations

import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import TextIO

from jail_exporter.engine import ReconciliationEngine
from jail_exporter.exposition import encode
from jail_exporter.validators import STDOUT

logger = logging.getLogger(__name__)


class FileExporter:
    """Run a single collection cycle and write the exposition text.

    Files are replaced atomically: the output is written to a temporary file
    in the same directory and renamed over the target, so node_exporter never
    reads a partial file.
    """

    def __init__(self, output: str | Path, stdout: TextIO | None = None):
        """Initialize the file exporter.

        Args:
            output: Absolute path of the .prom file, or "-" for stdout.
            stdout: Stream used for "-". Defaults to sys.stdout.
        """
        self.output = output
        self._stdout = stdout

    @property
    def to_stdout(self) -> bool:
        return self.output == STDOUT

    def export(self, engine: ReconciliationEngine) -> bytes:
        """Collect once and write the result.

        Returns:
            The bytes written.

        Raises:
            EnumerationError: If the jail list cannot be read. Nothing is
                written in that case.
        """
        result = engine.reconcile()
        body, _ = encode(result.snapshot)

        if self.to_stdout:
            stream = self._stdout if self._stdout is not None else sys.stdout
            stream.write(body.decode("utf-8"))
            stream.flush()
        else:
            self._write_atomic(Path(self.output), body)

        logger.debug(f"Exported {result.snapshot.live_count} jails to {self.output}")
        return body

    def _write_atomic(self, path: Path, body: bytes) -> None:
        # The temporary file must live on the same filesystem as the target.
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(body)
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
