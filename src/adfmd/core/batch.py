"""Batch step functions: file discovery and file-to-file conversion in either direction"""

import json
from pathlib import Path

from loguru import logger

from adfmd.core.pipeline import ConversionEngine
from adfmd.core.utils.diff import unified_diff


MD_EXTENSIONS = {'.md', '.markdown'}
ADF_EXTENSIONS = {'.json'}


def discover_files(path: Path, extensions: set[str] = MD_EXTENSIONS) -> list[Path]:
    """Return sorted files with a matching suffix under path, or [path] if a single file."""
    if path.is_file():
        return [path] if path.suffix in extensions else []
    return sorted(p for p in path.rglob('*') if p.suffix in extensions)


def run_to_adf(
    path: str,
    engine: ConversionEngine,
    output_dir: Path,
    indent: int = 2,
    ) -> list[tuple[Path, Path, list[str]]]:
    """Convert markdown under path to <stem>.json ADF files. Returns (source, output, warnings) triples."""
    output_dir.mkdir(parents=True, exist_ok=True)
    results = []
    for p in discover_files(Path(path)):
        try:
            result = engine.convert_result(p.read_text(encoding='utf-8'))
            out_file = output_dir / f"{p.stem}.json"
            out_file.write_text(
                json.dumps(result.document, indent=indent or None, ensure_ascii=False) + "\n",
                encoding='utf-8',
            )
        except Exception as e:
            raise RuntimeError(f"Failed to convert {p}: {e}") from e
        logger.bind(stage="batch").debug("{} -> {} ({} warning(s))", p, out_file, len(result.warnings))
        results.append((p, out_file, result.warnings))
    return results


def run_to_markdown(path: str, engine: ConversionEngine, output_dir: Path) -> list[tuple[Path, Path]]:
    """Convert ADF JSON under path to <stem>.md files. Returns (source, output) pairs."""
    output_dir.mkdir(parents=True, exist_ok=True)
    results = []
    for p in discover_files(Path(path), ADF_EXTENSIONS):
        try:
            tree = json.loads(p.read_text(encoding='utf-8'))
            out_file = output_dir / f"{p.stem}.md"
            out_file.write_text(engine.convert_reverse(tree), encoding='utf-8')
        except Exception as e:
            raise RuntimeError(f"Failed to convert {p}: {e}") from e
        results.append((p, out_file))
    return results


def run_roundtrip(path: str, engine: ConversionEngine) -> list[tuple[Path, list[str]]]:
    """Convert markdown to ADF and back. Returns (source, diff_lines) pairs; empty diff means lossless."""
    results = []
    for p in discover_files(Path(path)):
        try:
            original = p.read_text(encoding='utf-8')
            result = engine.convert_result(original)
            regenerated = engine.convert_reverse(result.document, result.frontmatter)
        except Exception as e:
            raise RuntimeError(f"Failed to convert {p}: {e}") from e
        results.append((p, unified_diff(original, regenerated, str(p), f"{p} (roundtrip)")))
    return results
