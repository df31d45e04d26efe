#!/usr/bin/env python3
"""
Filename utilities for generating output filenames.
"""

import os
import logging

logger = logging.getLogger(__name__)

INPUT_EXTENSIONS = (".gpx", ".json")
MAX_ATTEMPTS = 180


def _reserve(candidate: str) -> bool:
    """Create candidate exclusively; False if it already exists."""
    try:
        with open(candidate, "x"):
            pass
    except FileExistsError:
        return False
    except OSError as e:
        logger.error(f"Cannot create file {candidate}: {e}")
        raise ValueError(f"Cannot create file: {e}")
    return True


def generate_output_filename(input_filename: str) -> str:
    """
    Generates an output HTML filename and reserves it by creating an empty file.

    A trailing .gpx or .json extension (any case) is dropped and " map.html"
    appended; if that name is taken, " map (1).html", " map (2).html" and so on
    are tried.

    Args:
        input_filename: Path to the input route file

    Returns:
        Output filename that has been created as an empty file to reserve it

    Raises:
        RuntimeError: If no available filename is found
        ValueError: If a file cannot be created (permissions, invalid name)
    """
    input_dir = os.path.dirname(input_filename)
    base_name = os.path.basename(input_filename)

    for extension in INPUT_EXTENSIONS:
        if base_name.lower().endswith(extension):
            base_name = base_name[: -len(extension)]
            break

    base_output = base_name + " map"

    candidate = os.path.join(input_dir, base_output + ".html")
    if _reserve(candidate):
        return candidate

    for i in range(1, MAX_ATTEMPTS + 1):
        candidate = os.path.join(input_dir, f"{base_output} ({i}).html")
        if _reserve(candidate):
            return candidate

    logger.error(
        f"Could not find an available filename after {MAX_ATTEMPTS} attempts. "
        f"Please clean up your output directory or specify --output explicitly."
    )
    raise RuntimeError(f"No available filename found after {MAX_ATTEMPTS} attempts")
