"""
Typer CLI application with Rich integration.

Commands:
    generate      — Multi-angle generation for one product
    crop          — Deterministic crop / reframe of an image URL
    capabilities  — Profiles, angles, model cascade, configuration state
    bulk          — One generate request per CSV row (resumable)
    ledger        — Show generation records
    product       — add / show catalog products
    status        — Bulk progress
    config        — Show current configuration
    clean         — Remove local storage, progress or ledger data
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import typer
from rich import box
from rich.prompt import Confirm
from rich.table import Table
from rich.text import Text

from cli.console import console
from cli.display import (
    create_progress,
    show_banner,
    show_bulk_report,
    show_capabilities,
    show_config_table,
    show_crop_result,
    show_error,
    show_generation_result,
    show_ledger,
)
from utils.exceptions import StudioError

app = typer.Typer(
    name="studio",
    help="🎨 Product Studio — multi-angle product images and crops",
    rich_markup_mode="rich",
    add_completion=True,
    no_args_is_help=False,
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

product_app = typer.Typer(help="🗂️  Manage catalog products", no_args_is_help=True)
app.add_typer(product_app, name="product")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  HELPERS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _bootstrap(verbose: bool = False) -> None:
    from config.settings import cfg
    from utils.log_config import setup_root

    cfg.verbose = verbose or cfg.verbose
    cfg.paths.ensure()
    setup_root(cfg.paths.log_file, verbose=cfg.verbose)


def _guarded(action: Callable[[], Any]) -> Any:
    """Run *action*; render any ``StudioError`` as an error panel and exit 1."""
    from config.settings import cfg
    from core.studio import error_payload

    try:
        return action()
    except StudioError as exc:
        status, body = error_payload(exc, production=cfg.is_production)
        show_error(status, body)
        raise typer.Exit(code=1)


def _service():
    from config.settings import cfg
    from core.studio import StudioService

    return _guarded(lambda: StudioService.from_config(cfg))


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  GENERATE COMMAND
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@app.command()
def generate(
    product_id: str = typer.Argument(..., help="Catalog product id"),

    # ── References ──
    source: Optional[List[str]] = typer.Option(
        None, "--source", "-s",
        help="Source image URL (repeatable; first is canonical)",
    ),
    color_ref: Optional[str] = typer.Option(
        None, "--color-ref",
        help="Color-only reference image URL",
    ),

    # ── Angles & style ──
    angle: Optional[List[str]] = typer.Option(
        None, "--angle", "-a",
        help="Camera angle token (repeatable, processed in order)",
    ),
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p",
        help="Preferred style profile id (random if omitted)",
    ),
    prompt: Optional[str] = typer.Option(None, "--prompt", help="Extra adjustment instructions"),
    color: Optional[str] = typer.Option(None, "--color", help="Target garment color"),

    # ── Gallery ──
    place_first: Optional[bool] = typer.Option(
        None, "--place-first/--place-last",
        help="Put generated images before or after the existing gallery (default from config)",
    ),
    max_images: Optional[int] = typer.Option(
        None, "--max-images", "-m", min=1,
        help="Truncate the gallery to this many images",
    ),

    # ── Output ──
    identity: Optional[str] = typer.Option(None, "--as", help="Identity recorded in the ledger"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw response as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """
    🖼️  [bold]Generate studio images[/bold] for one product.

    [dim]Examples:[/dim]
        studio generate P1
        studio generate P1 -a front -a back -a left --profile model_03
        studio generate P1 -s https://cdn/x.jpg --color "navy blue" -m 6
    """
    _bootstrap(verbose)
    payload: Dict[str, Any] = {
        "sourceImageUrls": source or [],
        "colorReferenceImageUrl": color_ref,
        "angles": angle or None,
        "preferredProfileId": profile,
        "customPrompt": prompt,
        "targetColor": color,
        "placeFirst": place_first,
        "maxImages": max_images,
    }

    service = _service()
    try:
        if not as_json:
            show_banner()
        with console.status(f"Generating {product_id}…", spinner="dots"):
            result = _guarded(lambda: service.generate(product_id, payload, identity))
    finally:
        service.close()

    if as_json:
        console.print_json(data=result)
    else:
        show_generation_result(result)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  CROP COMMAND
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@app.command()
def crop(
    image_url: str = typer.Argument(..., help="http(s) URL of the source image"),
    x: float = typer.Option(..., "--x", help="Left edge in source pixels"),
    y: float = typer.Option(..., "--y", help="Top edge in source pixels"),
    width: float = typer.Option(..., "--width", "-W", help="Rectangle width"),
    height: float = typer.Option(..., "--height", "-H", help="Rectangle height"),
    aspect: Optional[str] = typer.Option(None, "--aspect", help="W:H (e.g. 4:5) or 'original'"),
    long_edge: Optional[int] = typer.Option(None, "--long-edge", "-l", help="Target long edge (512–4096)"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw response as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """
    ✂️  Crop and reframe an image to a target composition.

    [dim]Example: studio crop https://cdn/x.jpg --x 100 --y 40 -W 800 -H 1000 --aspect 4:5[/dim]
    """
    _bootstrap(verbose)
    payload = {
        "imageUrl": image_url,
        "crop": {"x": x, "y": y, "width": width, "height": height},
        "aspect": aspect,
        "targetLongEdge": long_edge,
    }

    service = _service()
    try:
        with console.status("Cropping…", spinner="dots"):
            result = _guarded(lambda: service.crop(payload))
    finally:
        service.close()

    if as_json:
        console.print_json(data=result)
    else:
        show_crop_result(result)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  CAPABILITIES COMMAND
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@app.command()
def capabilities(
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
) -> None:
    """🎭 Show profiles, angles and whether generation is configured."""
    _bootstrap()
    service = _service()
    try:
        caps = service.capabilities()
    finally:
        service.close()

    if as_json:
        console.print_json(data=caps)
        return
    show_banner()
    show_capabilities(caps)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  BULK COMMAND
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@app.command()
def bulk(
    input_csv: Path = typer.Argument(
        ..., help="CSV with a product_id column", exists=True, dir_okay=False,
    ),
    angle: Optional[List[str]] = typer.Option(
        None, "--angle", "-a",
        help="Default angles for rows without an 'angles' column",
    ),
    resume: bool = typer.Option(
        True, "--resume/--fresh", "-r/-f",
        help="Skip products already done, or start fresh",
    ),
    delay: Optional[float] = typer.Option(None, "--delay", help="Seconds between products"),
    identity: Optional[str] = typer.Option(None, "--as", help="Identity recorded in the ledger"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """
    📦 Run one generation per CSV row, sequentially.

    Optional columns: source_image_url, source_image_urls (| separated),
    angles (| separated), preferred_profile_id, target_color,
    custom_prompt, color_reference_image_url, place_first, max_images.
    """
    from dataclasses import replace

    from config.settings import cfg
    from core.bulk import BulkRunner, load_jobs
    from core.progress import BulkProgress

    _bootstrap(verbose)
    show_banner()

    cfg.bulk = replace(
        cfg.bulk,
        resume=resume,
        inter_item_delay=cfg.bulk.inter_item_delay if delay is None else delay,
    )
    jobs = _guarded(lambda: load_jobs(input_csv, cfg.bulk.id_column, angle or ()))
    progress = BulkProgress(cfg.paths.progress_db)
    if not resume:
        progress.reset()
        console.print("[warning]Progress reset — starting fresh[/]")

    show_config_table({
        "Input CSV": str(input_csv),
        "Products": len(jobs),
        "Resume": resume,
        "Delay": f"{cfg.bulk.inter_item_delay}s",
        "Default angles": list(angle or ["front"]),
    })

    if len(jobs) > 200 and not Confirm.ask(
        f"[warning]Generate for {len(jobs)} products? This may take a while[/]", default=True,
    ):
        console.print("[muted]Cancelled[/]")
        raise typer.Exit()

    service = _service()
    runner = BulkRunner(service.generate, progress, cfg.bulk, identity=identity or cfg.identity)
    icons = {"done": "✅", "partial": "⚠️ ", "failed": "❌", "skipped": "⏩"}

    try:
        with create_progress() as bar:
            task = bar.add_task("Products", total=len(jobs))

            def on_item(job, status, detail):
                bar.console.print(f"{icons.get(status, '•')} {job.product_id}"
                                  + (f" [muted]— {detail}[/]" if detail else ""))
                bar.advance(task)

            runner.run(jobs, on_item=on_item)
    except KeyboardInterrupt:
        console.print("\n[warning]Interrupted — rerun with --resume to continue[/]")
    finally:
        service.close()

    show_bulk_report(progress.stats(), progress.failures())


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  LEDGER COMMAND
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@app.command()
def ledger(
    product_id: Optional[str] = typer.Argument(None, help="Only this product"),
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Max records"),
    as_json: bool = typer.Option(False, "--json", help="Print as JSON"),
) -> None:
    """📒 Show generation ledger records."""
    from config.settings import cfg
    from core.ledger import GenerationLedger

    _bootstrap()
    store = GenerationLedger(cfg.paths.ledger_db)
    try:
        records = store.for_product(product_id, limit) if product_id else store.recent(limit)
        total = store.count(product_id)
    finally:
        store.close()

    if as_json:
        console.print_json(data=[r.to_dict() for r in records])
        return
    show_ledger(records)
    console.print(f"[muted]{len(records)} of {total} record(s)[/]\n")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  PRODUCT COMMANDS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@product_app.command("add")
def product_add(
    product_id: str = typer.Argument(..., help="Product id"),
    name: Optional[str] = typer.Option(None, "--name"),
    category: Optional[str] = typer.Option(None, "--category"),
    color: Optional[List[str]] = typer.Option(None, "--color", help="Catalog color (repeatable)"),
    image: Optional[List[str]] = typer.Option(None, "--image", "-i", help="Gallery URL (repeatable)"),
    reference: Optional[str] = typer.Option(None, "--reference", help="Size-chart / reference URL"),
) -> None:
    """➕ Add or replace a catalog product."""
    from config.settings import cfg
    from core.catalog import ProductCatalog
    from core.models import ProductContext, clean_url_list

    _bootstrap()
    catalog = ProductCatalog(cfg.paths.catalog_db)
    try:
        catalog.upsert(ProductContext(
            product_id=product_id,
            name=name,
            category=category,
            colors=list(color or []),
            images=clean_url_list(image or []),
            reference_url=reference,
        ))
    finally:
        catalog.close()
    console.print(f"[success]✅ Saved product {product_id}[/]")


@product_app.command("show")
def product_show(product_id: str = typer.Argument(..., help="Product id")) -> None:
    """🔎 Show a catalog product and its gallery."""
    from config.settings import cfg
    from core.catalog import ProductCatalog

    _bootstrap()
    catalog = ProductCatalog(cfg.paths.catalog_db)
    try:
        product = _guarded(lambda: catalog.get(product_id))
    finally:
        catalog.close()

    show_config_table({
        "Id": product.product_id,
        "Name": product.name or "—",
        "Category": product.category or "—",
        "Colors": product.colors or ["—"],
        "Reference": product.reference_url or "—",
    })
    table = Table(title="🖼️  Gallery", box=box.SIMPLE)
    table.add_column("#", style="muted", width=4)
    table.add_column("URL", style="url", overflow="fold")
    for i, url in enumerate(product.images, 1):
        table.add_row(str(i), url)
    console.print(table)
    console.print()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  STATUS COMMAND
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@app.command()
def status() -> None:
    """
    📊 Show bulk-run progress.
    """
    from config.settings import cfg
    from core.progress import BulkProgress

    show_banner()
    cfg.paths.ensure()

    if not cfg.paths.progress_db.exists():
        console.print("[warning]No progress data found. Run 'studio bulk' first.[/]")
        raise typer.Exit()

    pm = BulkProgress(cfg.paths.progress_db)
    show_bulk_report(pm.stats(), pm.failures())


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  CONFIG COMMAND
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@app.command()
def config() -> None:
    """
    ⚙️  Show current configuration from settings.py.
    """
    from config.settings import cfg

    show_banner()

    g, s = cfg.generation, cfg.storage
    show_config_table({
        "Environment": cfg.environment,
        "API key set": g.configured,
        "Model cascade": list(g.model_candidates),
        "Aspect ratio": g.aspect_ratio,
        "Image size (pro)": g.image_size,
        "Max references": g.max_reference_images,
        "Reference cap": f"{g.max_reference_bytes // (1024 * 1024)} MB",
        "Model timeout": f"{g.request_timeout}s",
        "Fetch timeout": f"{g.fetch_timeout}s",
        "Crop long edge": f"{cfg.crop.default_long_edge} ({cfg.crop.min_long_edge}–{cfg.crop.max_long_edge})",
        "Storage": s.backend,
        "Bucket": s.bucket or "—",
        "Public base URL": s.public_base_url,
        "BG removal": cfg.bg.enabled,
        "Place first": cfg.place_first,
    })

    checks = [
        ("Catalog DB", cfg.paths.catalog_db),
        ("Ledger DB", cfg.paths.ledger_db),
        ("Progress DB", cfg.paths.progress_db),
        ("Storage dir", cfg.paths.storage_dir),
    ]

    table = Table(title="📁 File Status", box=box.SIMPLE)
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Path", style="muted")

    for name, path in checks:
        exists = path.exists()
        status_str = "✅ Found" if exists else "❌ Missing"
        style = "green" if exists else "red"
        table.add_row(name, Text(status_str, style=style), str(path))

    console.print(table)
    console.print()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  CLEAN COMMAND
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@app.command()
def clean(
    storage: bool  = typer.Option(False, "--storage",  help="Delete locally stored images"),
    progress: bool = typer.Option(True,  "--progress/--no-progress", help="Reset bulk progress DB"),
    ledger_db: bool = typer.Option(False, "--ledger",  help="Delete the generation ledger"),
    all_: bool     = typer.Option(False, "--all",      help="Clean everything"),
) -> None:
    """
    🧹 Clean local storage, progress and ledger data.
    """
    import shutil
    from config.settings import cfg

    show_banner()

    cleaned = []

    if (storage or all_) and cfg.paths.storage_dir.exists():
        shutil.rmtree(cfg.paths.storage_dir, ignore_errors=True)
        cleaned.append("local storage")

    if (progress or all_) and cfg.paths.progress_db.exists():
        cfg.paths.progress_db.unlink()
        cleaned.append("progress database")

    if (ledger_db or all_) and cfg.paths.ledger_db.exists():
        if Confirm.ask("[warning]Delete the generation ledger?[/]", default=False):
            cfg.paths.ledger_db.unlink()
            cleaned.append("generation ledger")

    if cleaned:
        for item in cleaned:
            console.print(f"  [success]✅ Cleaned:[/] {item}")
    else:
        console.print("[muted]Nothing to clean[/]")

    console.print()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  DEFAULT (no command)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@app.callback(invoke_without_command=True)
def default(ctx: typer.Context) -> None:
    """
    🎨 Product Studio — multi-angle product images.

    Run [bold]studio generate <product>[/bold] to generate images.
    Run [bold]studio --help[/bold] to see all commands.
    """
    if ctx.invoked_subcommand is None:
        show_banner()
        console.print("Available commands:\n")
        console.print("  [bold cyan]generate[/]      Multi-angle generation for a product")
        console.print("  [bold cyan]crop[/]          Crop / reframe an image URL")
        console.print("  [bold cyan]capabilities[/]  Profiles, angles, model cascade")
        console.print("  [bold cyan]bulk[/]          One generation per CSV row")
        console.print("  [bold cyan]ledger[/]        Generation records")
        console.print("  [bold cyan]product[/]       Add / show catalog products")
        console.print("  [bold cyan]status[/]        Bulk progress")
        console.print("  [bold cyan]config[/]        Current configuration")
        console.print("  [bold cyan]clean[/]         Remove local data")
        console.print()
        console.print("[muted]Run 'python main.py generate --help' for detailed options[/]")
        console.print()
