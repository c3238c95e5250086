"""
Archive step: zip every saved batch file into one archive.
"""

import logging
import os
import zipfile
from typing import List

from .errors import PersistenceError

logger = logging.getLogger(__name__)


def list_match_files(source_dir: str) -> List[str]:
    """Return the batch files under source_dir, relative to it, sorted."""
    files = []
    for root, _dirs, names in os.walk(source_dir):
        for name in names:
            if name.endswith('.part'):
                continue
            files.append(os.path.relpath(os.path.join(root, name), source_dir))
    return sorted(files)


def archive_matches(source_dir: str = "matches", output_path: str = "matches.zip") -> int:
    """
    Zip all files in source_dir into output_path.

    Args:
        source_dir: Directory holding the saved batches
        output_path: Archive file to create (overwritten if present)

    Returns:
        Number of files added to the archive

    Raises:
        PersistenceError: If the directory cannot be read or the archive written
    """
    try:
        files = list_match_files(source_dir)
        logger.info(f"Zipping {len(files)} match files")

        with zipfile.ZipFile(output_path, 'w', compression=zipfile.ZIP_DEFLATED) as archive:
            for name in files:
                logger.debug(f"Adding file: {name}")
                archive.write(os.path.join(source_dir, name), arcname=name)
    except OSError as e:
        raise PersistenceError(f"Failed to archive {source_dir} to {output_path}: {e}") from e

    logger.info(f"Finished zipping matches to {output_path}")
    return len(files)
