"""
orchestrator.py — One generate action: fan out a request per product type.

Every product type gets its own task. A task that fails is recorded and
dropped; it never cancels or disturbs its siblings, and the batch only
returns once every task has settled.

Result order is catalog order of the requested product types, whatever
order the tasks happen to finish in.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Iterable, List, Optional, Tuple, Union

from rich.console import Console

from .client import MockupClient
from .models import BatchFailure, BatchResult, GeneratedImage
from .products import ProductType, catalog_order

console = Console()

FailureCallback = Callable[[BatchFailure], None]

_Outcome = Tuple[ProductType, Union[GeneratedImage, Exception]]


async def _generate_one(
    client: MockupClient,
    logo_payload: str,
    product_type: ProductType,
    custom_instruction: str,
) -> _Outcome:
    try:
        payload = await client.generate(logo_payload, product_type, custom_instruction)
    except Exception as exc:
        return product_type, exc
    # Timestamp is taken when this task settles.
    image = GeneratedImage.create(
        image_data=payload,
        product_type=product_type,
        source_prompt=f"Mockup for {product_type.label}",
    )
    return product_type, image


async def generate_batch(
    client: MockupClient,
    logo_payload: str,
    product_types: Iterable[ProductType],
    custom_instruction: str = "",
    on_failure: Optional[FailureCallback] = None,
) -> BatchResult:
    """
    Generate one mockup per product type concurrently.

    Args:
        client:             Anything with an async ``generate`` like MockupClient
        logo_payload:       Logo as a data URL
        product_types:      Selection; duplicates collapse, order is ignored
        custom_instruction: Optional extra prompt text applied to every product
        on_failure:         Observer called once per failed product type

    Returns:
        BatchResult with successes in catalog order and the failures beside them.
        Zero successes is a valid result, not an error.
    """
    requested = catalog_order(product_types)
    result = BatchResult(requested=requested)
    if not requested:
        return result

    console.print(
        f"\n[bold cyan]→ Generating {len(requested)} mockup(s): "
        f"{', '.join(p.label for p in requested)}[/bold cyan]"
    )
    t0 = time.monotonic()
    outcomes: List[_Outcome] = await asyncio.gather(
        *(_generate_one(client, logo_payload, p, custom_instruction) for p in requested)
    )
    result.elapsed_seconds = time.monotonic() - t0

    for product_type, outcome in outcomes:
        if isinstance(outcome, GeneratedImage):
            result.images.append(outcome)
            continue
        failure = BatchFailure(product_type=product_type, error=outcome)
        result.failures.append(failure)
        console.print(f"  [yellow]⚠ {product_type.label} failed: {outcome}[/yellow]")
        if on_failure is not None:
            on_failure(failure)

    console.print(
        f"  [green]✓ {len(result.images)}/{len(requested)} mockups[/green] "
        f"[dim]({result.elapsed_seconds:.1f}s)[/dim]"
    )
    return result
