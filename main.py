# main.py
import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional
from config.cache import close_redis, redis_enabled
from config.settings import settings
from core.candidate_store import build_index
from core.embeddings import EmbeddingService
from model.classification import ClassificationResult, ProductRequest
from model.index import IndexDocument, IndexFile
from service.classification_service import ClassificationService
from util.enums import Color
from util.errors import AppError
from util.logger import init_logger


def _dump(result: ClassificationResult, with_quality: bool) -> dict:
    out = result.model_dump(mode="json")
    if with_quality:
        out["validation"] = ClassificationService.validate(result).model_dump()
        out["quality"] = ClassificationService.quality(result)
    return out


def _read_batch(path: str) -> List[ProductRequest]:
    """JSON list of {sku, name}, or plain text with one product name per line."""
    raw = Path(path).read_text(encoding="utf-8")
    if raw.lstrip().startswith("["):
        return [ProductRequest.model_validate(item) for item in json.loads(raw)]
    return [ProductRequest(name=line.strip()) for line in raw.splitlines() if line.strip()]


def _classify(args: argparse.Namespace) -> int:
    service = ClassificationService.from_settings(settings)
    if args.batch:
        products = _read_batch(args.batch)
        results = service.classify_many(products, args.concurrency)
        payload = [
            {"sku": p.sku, "name": p.name, **_dump(r, args.quality)} for p, r in zip(products, results)
        ]
    else:
        payload = _dump(service.classify(args.sku, args.product), args.quality)
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


async def _build(rows_path: str, out_path: str, provider: Optional[str], dim: int) -> int:
    rows = json.loads(Path(rows_path).read_text(encoding="utf-8"))
    embeddings = EmbeddingService(settings)
    try:
        entries, model = await build_index(rows, embeddings, dim=dim, provider=provider)
    finally:
        if redis_enabled():
            await close_redis()
    index = IndexFile(
        dim=dim,
        model=model,
        docs=[
            IndexDocument(
                id=e.id, source=e.source, text=e.text,
                embedding=[float(x) for x in e.embedding], metadata=e.metadata,
            )
            for e in entries
        ],
    )
    Path(out_path).write_text(index.model_dump_json(), encoding="utf-8")
    print(f"{Color.GREEN}Wrote {len(entries)} docs (d={dim}) to {out_path}{Color.RESET}", file=sys.stderr)
    return 0


def _parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="hazmat-classifier", description="Hazmat classification engine")
    p.add_argument("--debug", action="store_true", help="verbose logging")
    sub = p.add_subparsers(dest="command", required=True)

    c = sub.add_parser("classify", help="classify product descriptions")
    src = c.add_mutually_exclusive_group(required=True)
    src.add_argument("--product", help="free-text product description")
    src.add_argument("--batch", help="JSON [{sku, name}] or text file, one name per line")
    c.add_argument("--sku", default=None)
    c.add_argument("--concurrency", type=int, default=None)
    c.add_argument("--quality", action="store_true", help="include validation and quality score")

    b = sub.add_parser("build-index", help="embed rows {id, source, text, metadata} into an index file")
    b.add_argument("rows")
    b.add_argument("--out", default=settings.INDEX_PATH)
    b.add_argument("--provider", default=None)
    b.add_argument("--dim", type=int, default=settings.EMBED_DIM)
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = _parser().parse_args(argv)
    init_logger("DEBUG" if args.debug else None)
    try:
        if args.command == "build-index":
            return asyncio.run(_build(args.rows, args.out, args.provider, args.dim))
        return _classify(args)
    except AppError as e:
        print(f"{Color.RED}{e.message}{Color.RESET}", file=sys.stderr)
        return e.exit_code or 1


if __name__ == "__main__":
    sys.exit(main())
