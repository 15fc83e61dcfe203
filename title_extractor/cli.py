"""CLI interface for title document extraction"""
import asyncio
import json
import time
import traceback
import uuid
from pathlib import Path
from typing import Dict, List, Optional

import click

from .classifier import is_supported
from .exceptions import ExtractionError
from .extractor import TitleExtractor
from .llm_client import LLMClient
from .logging_config import setup_logging
from .progress import ProgressEvent, Stage
from .structuring import StructuringStage


def collect_files(target: Path) -> List[Path]:
    """A single file, or every supported file directly inside a folder"""
    if target.is_file():
        return [target]
    return sorted(p for p in target.iterdir() if p.is_file() and is_supported(p))


def echo_progress(event: ProgressEvent) -> None:
    if event.stage in (Stage.CONNECTED, Stage.ERROR):
        return
    click.echo(f"  [{event.progress:3d}%] {event.stage.value}: {event.message}")


async def process_file(extractor: TitleExtractor,
                       path: Path,
                       output_dir: Optional[Path] = None,
                       accurate: bool = False,
                       quiet: bool = False) -> Optional[Dict]:
    """Process a single file, returning its records as a dict (None on failure)"""
    click.echo(f"Processing: {path.name}")
    job_id = str(uuid.uuid4())
    subscription = None if quiet else extractor.progress.subscribe(job_id, echo_progress)

    start_ts = time.perf_counter()
    try:
        result = await extractor.submit(path, job_id=job_id, force_accurate=accurate)
    except ExtractionError as e:
        click.echo(f"  Error processing {path.name}: {e}", err=True)
        return None
    finally:
        if subscription is not None:
            extractor.progress.unsubscribe(subscription)
    elapsed_s = time.perf_counter() - start_ts

    data = result.to_dict()
    if output_dir:
        output_path = output_dir / f"{path.stem}_results.json"
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        click.echo(f"  Results saved to: {output_path}")

    counts = ", ".join(f"{k}: {v}" for k, v in result.record_counts().items())
    click.echo(f"  Time: {elapsed_s:.2f}s | {counts} | confidence: {result.confidence}")
    return data


async def process_all(extractor: TitleExtractor, files: List[Path], output_dir: Optional[Path],
                      accurate: bool, quiet: bool) -> Dict[str, Dict]:
    all_results = {}
    for path in files:
        data = await process_file(extractor, path, output_dir, accurate, quiet)
        if data is not None:
            all_results[path.name] = data
    return all_results


@click.command()
@click.argument('target', type=click.Path(exists=True, path_type=Path))
@click.option('--output-dir', '-o',
              type=click.Path(file_okay=False, path_type=Path),
              help='Directory to save extraction results')
@click.option('--accurate', '-a', is_flag=True,
              help='Use the accurate model tier for every document')
@click.option('--quiet', '-q', is_flag=True,
              help='Hide per-stage progress')
@click.option('--verbose', '-v', is_flag=True,
              help='Verbose output')
def main(target: Path, output_dir: Path, accurate: bool, quiet: bool, verbose: bool):
    """
    Extract deeds, deeds of trust, judgments and liens from property records.

    TARGET: A document (PDF, image, DOC/DOCX, HTML, TXT) or a folder of them

    Examples:

    \b
    title-extract deed.pdf
    title-extract /path/to/records --output-dir results --accurate
    """
    setup_logging("DEBUG" if verbose else "WARNING")

    # Initialize extractor
    try:
        extractor = TitleExtractor(StructuringStage(LLMClient()))
    except Exception as e:
        click.echo(f"Error initializing extractor: {e}", err=True)
        if verbose:
            traceback.print_exc()
        raise SystemExit(1)

    files = collect_files(target)
    if not files:
        click.echo(f"No supported files found in {target}", err=True)
        raise SystemExit(1)
    click.echo(f"Found {len(files)} file(s)")

    # Create output directory if specified
    if output_dir:
        output_dir.mkdir(parents=True, exist_ok=True)

    all_results = asyncio.run(process_all(extractor, files, output_dir, accurate, quiet))

    # Summary
    click.echo(f"\nProcessed {len(all_results)} of {len(files)} file(s) successfully")

    # Save combined results if output directory specified
    if output_dir and all_results:
        combined_path = output_dir / "all_results.json"
        with open(combined_path, 'w', encoding='utf-8') as f:
            json.dump(all_results, f, indent=2, ensure_ascii=False)
        click.echo(f"Combined results saved to: {combined_path}")

    if len(all_results) < len(files):
        raise SystemExit(1)


if __name__ == '__main__':
    main()
