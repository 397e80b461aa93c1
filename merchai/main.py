"""
MerchAI Studio — terminal front end

Usage:
  python -m merchai.main --logo brand.png
  python -m merchai.main --logo brand.png --products mug tshirt --instruction "on a marble desk"
  python -m merchai.main --logo brand.png --no-edit
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.rule import Rule
from rich.table import Table

from .client import MockupClient
from .codec import decode_payload
from .config import Settings
from .errors import MerchAIError
from .models import BatchFailure, GeneratedImage
from .products import ProductType, parse_product
from .session import Studio, download_name

console = Console()


# ── CLI ───────────────────────────────────────────────────────────────────────

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="MerchAI Studio — turn a logo into product mockups with Gemini"
    )
    parser.add_argument("--logo", required=True, help="Path to the logo image (PNG, JPG, ...)")
    parser.add_argument(
        "--products",
        nargs="+",
        type=parse_product,
        default=list(ProductType),
        metavar="PRODUCT",
        help="Product types to mock up: " + ", ".join(p.value for p in ProductType) + " (default: all)",
    )
    parser.add_argument(
        "--instruction",
        default="",
        help="Extra prompt text applied to every mockup",
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Output directory (default: $MERCHAI_OUTPUT_DIR/<timestamp>)",
    )
    parser.add_argument(
        "--no-edit",
        action="store_true",
        help="Skip the interactive edit loop after generating",
    )
    return parser.parse_args(argv)


# ── Output helpers ────────────────────────────────────────────────────────────

def save_image(image: GeneratedImage, output_dir: Path) -> Path:
    path = output_dir / download_name(image.product_type, image.created_at)
    path.write_bytes(decode_payload(image.image_data))
    return path


def show_gallery(studio: Studio) -> None:
    table = Table(title="Your Mockups", show_lines=False)
    table.add_column("#", style="bold cyan", justify="right")
    table.add_column("Product")
    table.add_column("Prompt", style="dim")
    table.add_column("Created")
    for idx, image in enumerate(studio.gallery, 1):
        created = datetime.fromtimestamp(image.created_at / 1000).strftime("%H:%M:%S")
        table.add_row(
            str(idx),
            f"{image.product_type.icon} {image.product_type.label}",
            image.source_prompt,
            created,
        )
    console.print(table)


# ── Edit loop ─────────────────────────────────────────────────────────────────

async def edit_loop(studio: Studio, output_dir: Path) -> None:
    """
    Interactive editor: pick a mockup, send free-text edits, then save a copy,
    download the current version or close without saving.
    """
    while len(studio.gallery):
        console.print(Rule("[bold]Edit with AI[/bold]"))
        show_gallery(studio)
        choice = Prompt.ask("✏️  Mockup number to edit ([dim]q to quit[/dim])").strip().lower()
        if choice in {"q", "quit", "exit", ""}:
            break
        if not choice.isdigit() or not 1 <= int(choice) <= len(studio.gallery):
            console.print("  [yellow]⚠ Pick a number from the table.[/yellow]")
            continue

        editor = studio.open_editor(studio.gallery[int(choice) - 1].id)
        console.print(
            f"\n  Editing [bold]{editor.origin.product_type.label}[/bold] "
            f"[dim]({editor.origin.id[:8]})[/dim]\n"
            "  [dim]Describe a change, e.g. 'Add a vintage film filter', 'Place it on a wooden table'.\n"
            "  Commands: save · download · close[/dim]\n"
        )

        while studio.editor is not None:
            text = Prompt.ask("💬 Edit").strip()
            command = text.lower()
            if command == "save":
                saved = studio.save_edit()
                console.print(f"  [green]✓ Saved copy[/green] → {save_image(saved, output_dir)}")
            elif command == "download":
                filename, data = studio.export_current()
                path = output_dir / filename
                path.write_bytes(data)
                console.print(f"  [green]✓ Downloaded[/green] → {path}")
            elif command == "close":
                studio.close_editor()
                console.print("  [dim]Closed without saving.[/dim]")
            elif text:
                console.print("  [dim]→ AI is editing...[/dim]")
                try:
                    await studio.apply_edit(text)
                except MerchAIError as exc:
                    console.print(f"  [red]✗ Failed to edit image. Please try again.[/red] [dim]({exc})[/dim]")
                    continue
                preview = output_dir / f"preview-{editor.origin.product_type.value}-v{len(editor.versions) - 1}.png"
                preview.write_bytes(decode_payload(editor.current_payload))
                console.print(f"  [green]✓ Edit applied[/green] → preview {preview}")


# ── Main ──────────────────────────────────────────────────────────────────────

async def run(args: argparse.Namespace, settings: Settings) -> int:
    start = time.time()
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    output_dir = Path(args.output) if args.output else settings.output_dir / timestamp
    output_dir.mkdir(parents=True, exist_ok=True)

    console.print(Rule("[bold magenta]MerchAI Studio[/bold magenta]"))
    console.print(
        f"  Logo: [bold]{args.logo}[/bold]  |  "
        f"Model: [bold]{settings.model}[/bold]  |  "
        f"Output: [bold]{output_dir}[/bold]"
    )

    studio = Studio(MockupClient.from_settings(settings))

    # ── Step 1: Logo ──────────────────────────────────────────────────────────
    console.print("\n[bold]Step 1/2 — Loading logo[/bold]")
    try:
        studio.load_logo_file(Path(args.logo))
    except (MerchAIError, OSError) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        return 1
    console.print(f"  [green]✓[/green] Loaded {args.logo}")

    for product in args.products:
        if product not in studio.selection:
            studio.toggle_product(product)

    # ── Step 2: Generate ──────────────────────────────────────────────────────
    console.print("\n[bold]Step 2/2 — Generating mockups (Gemini)[/bold]")
    failures: List[BatchFailure] = []
    result = await studio.generate(args.instruction, on_failure=failures.append)

    for image in result.images:
        console.print(f"    {image.product_type.icon} {image.product_type.label}: {save_image(image, output_dir)}")
    if result.partial:
        console.print(
            f"  [yellow]⚠ {len(failures)} of {len(result.requested)} mockup(s) failed: "
            f"{', '.join(f.product_type.label for f in failures)}[/yellow]"
        )

    console.print(
        Panel(
            f"{len(result.images)} mockup(s) generated in [bold]{time.time() - start:.0f}s[/bold]\n"
            f"Outputs saved to: [bold]{output_dir}[/bold]",
            title="[bold green]Generation Complete[/bold green]",
            border_style="green" if result.images else "red",
        )
    )

    if not args.no_edit:
        await edit_loop(studio, output_dir)
    return 0 if result.images else 2


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    settings = Settings.from_env()
    if not settings.api_key:
        console.print("[bold red]Error:[/bold red] GEMINI_API_KEY not set.")
        console.print("Create a .env file from .env.example and add your key.")
        sys.exit(1)
    sys.exit(asyncio.run(run(args, settings)))


if __name__ == "__main__":
    main()
