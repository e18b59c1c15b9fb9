"""
Rich display components — banner, tables, progress, panels.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

from rich import box
from rich.align import Align
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from cli.console import console
from core.models import GenerationRecord


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  BANNER
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

BANNER = r"""
  ___  _             _ _
 / __|| |_ _  _  __| (_) ___
 \__ \|  _| || |/ _` | |/ _ \
 |___/ \__|\_,_|\__,_|_|\___/
"""


def show_banner() -> None:
    panel = Panel(
        Align.center(Text(BANNER, style="bold cyan")),
        subtitle="product image studio",
        border_style="bright_blue",
        padding=(0, 2),
    )
    console.print(panel)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  CONFIG TABLE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def show_config_table(config: Dict[str, Any]) -> None:
    """Display configuration as a rich table."""
    table = Table(
        title="⚙️  Configuration",
        box=box.ROUNDED,
        border_style="bright_blue",
        show_header=True,
        header_style="bold white on blue",
        padding=(0, 1),
    )
    table.add_column("Setting", style="stat_key", min_width=20)
    table.add_column("Value", style="stat_val", min_width=30)

    for key, value in config.items():
        if isinstance(value, bool):
            val_str = "✅ Yes" if value else "❌ No"
            style = "success" if value else "muted"
        elif isinstance(value, (list, tuple)):
            val_str = " → ".join(str(v) for v in value)
            style = "model"
        elif isinstance(value, (int, float)):
            val_str = str(value)
            style = "highlight"
        else:
            val_str = str(value)
            style = "stat_val"
        table.add_row(key, Text(val_str, style=style))

    console.print(table)
    console.print()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  GENERATION RESULT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def show_generation_result(result: Dict[str, Any]) -> None:
    ok = not result.get("partialSuccess")
    table = Table(
        title=f"🖼️  Generated — {result['productId']}",
        box=box.DOUBLE_EDGE,
        border_style="bright_green" if ok else "yellow",
        header_style="bold white on green" if ok else "bold black on yellow",
    )
    table.add_column("Angle", style="angle")
    table.add_column("Result")
    table.add_column("URL / reason", overflow="fold")

    for angle, url in zip(result["generatedAngles"], result["generatedImageUrls"]):
        table.add_row(angle, "[success]✅ ok[/]", Text(url, style="url"))
    for failure in result["failedAngles"]:
        status = failure.get("status") or "-"
        table.add_row(failure["angle"], f"[error]❌ {status}[/]", failure["message"])

    console.print(table)

    profile = result.get("profile") or {}
    tree = Tree("🎨 Batch", style="bold")
    tree.add(f"Profile: [highlight]{profile.get('label', '?')}[/] ({profile.get('id', '?')})")
    tree.add(f"Model: [model]{result.get('modelUsed')}[/]")
    tree.add(f"Gallery size: {len(result.get('images', []))}")
    console.print(tree)
    console.print()


def show_crop_result(result: Dict[str, Any]) -> None:
    rect = result["crop"]
    table = Table(title="✂️  Crop", box=box.ROUNDED, border_style="cyan")
    table.add_column("Field", style="stat_key")
    table.add_column("Value", style="stat_val", overflow="fold")
    table.add_row("Source", result["sourceImageUrl"])
    table.add_row("Extract", f"{rect['left']},{rect['top']} {rect['width']}×{rect['height']}")
    table.add_row("Aspect", result.get("aspect") or "original")
    table.add_row("Output", f"{result['width']}×{result['height']} {result['mimeType']}")
    table.add_row("URL", Text(result["croppedImageUrl"], style="url"))
    console.print(table)
    console.print()


def show_capabilities(caps: Dict[str, Any]) -> None:
    table = Table(title="🎭 Style Profiles", box=box.SIMPLE_HEAVY, border_style="bright_blue")
    table.add_column("Id", style="highlight")
    table.add_column("Label")
    table.add_column("Description", style="muted", max_width=60)
    for p in caps["availableProfiles"]:
        table.add_row(p["id"], p["label"], p["description"])
    console.print(table)

    show_config_table({
        "Angles": caps["availableAngles"],
        "Model candidates": caps["modelCandidates"],
        "Generation configured": caps["configured"],
        "BG removal configured": caps["backgroundRemovalConfigured"],
    })


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  LEDGER
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def show_ledger(records: Sequence[GenerationRecord]) -> None:
    table = Table(title="📒 Generation Ledger", box=box.ROUNDED, border_style="bright_blue")
    table.add_column("Product", style="stat_key")
    table.add_column("Angle", style="angle")
    table.add_column("Profile", style="highlight")
    table.add_column("Model", style="model")
    table.add_column("Anchor", style="muted", max_width=30, overflow="ellipsis")
    table.add_column("BG", justify="center")
    table.add_column("URL", style="url", overflow="fold")

    for r in records:
        table.add_row(
            r.product_id,
            r.angle,
            r.profile_id,
            r.model_used,
            r.anchor_url or "—",
            "✅" if r.bg_removed else "",
            r.generated_url,
        )
    console.print(table)
    console.print()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  BULK
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def create_progress() -> Progress:
    return Progress(
        SpinnerColumn("dots", style="progress"),
        TextColumn("[progress]{task.description}[/]"),
        BarColumn(bar_width=40, complete_style="green", finished_style="bright_green"),
        MofNCompleteColumn(),
        TextColumn("│"),
        TimeElapsedColumn(),
        console=console,
        expand=False,
    )


def show_bulk_report(stats: Dict[str, int], failures: List[Dict[str, Any]]) -> None:
    table = Table(
        title="📊 Bulk Report",
        box=box.DOUBLE_EDGE,
        border_style="bright_green" if not failures else "yellow",
    )
    table.add_column("Metric", style="stat_key", min_width=18)
    table.add_column("Count", justify="right", style="stat_val")

    total = sum(stats.values())
    done = stats.get("done", 0)
    rate = (done / total * 100) if total else 0
    table.add_row("✅ Done", f"{done} ([green]{rate:.1f}%[/])")
    table.add_row("❌ Failed", str(stats.get("failed", 0)))
    table.add_section()
    table.add_row("📦 Total", str(total))
    console.print(table)

    if failures:
        ft = Table(title="❌ Failed products", box=box.SIMPLE)
        ft.add_column("Product", style="stat_key")
        ft.add_column("Status", justify="right")
        ft.add_column("Code", style="muted")
        ft.add_column("Message", max_width=70)
        for f in failures:
            ft.add_row(f["product_id"], str(f.get("http_status") or "-"), f.get("code") or "", f.get("error") or "")
        console.print(ft)
    console.print()


def show_error(status: int, body: Dict[str, Any]) -> None:
    lines = [f"[error]{body['error']}[/]"]
    debug = body.get("debug") or {}
    if debug.get("code"):
        lines.append(f"[muted]code:[/] {debug['code']}  [muted]status:[/] {status}")
    for attempt in debug.get("attempts") or []:
        lines.append(f"  [model]{attempt['model']}[/] — {attempt['message']}")
    for failure in debug.get("failures") or []:
        lines.append(f"  [angle]{failure['angle']}[/] — {failure['message']}")
    console.print(Panel("\n".join(lines), title=f"Failed ({status})", border_style="red"))
