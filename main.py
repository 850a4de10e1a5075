import argparse
import sys
from pathlib import Path

from dotenv import load_dotenv

from receipt_scanner.exception import CustomException
from receipt_scanner.models import PipelineOptions
from receipt_scanner.pipeline import ReceiptPipeline
from receipt_scanner.utils.artifacts_store import LocalArtifactStore
from receipt_scanner.utils.load_config import load_settings

load_dotenv()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Extract line items and metadata from a receipt image.")
    parser.add_argument("image", help="Path to a JPEG, PNG or WebP receipt image")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument("--languages", default=None, help="Recognition languages, e.g. eng or eng+chi_sim")
    parser.add_argument("--owner", default="cli", help="Owner id used in storage keys")
    parser.add_argument("--store-root", default=None, help="Store derivatives on local disk under this directory")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings(args.config)

    store = LocalArtifactStore(args.store_root or settings.storage.local_root)
    pipeline = ReceiptPipeline(settings=settings, store=store)

    options = pipeline.default_options()
    if args.languages:
        options = PipelineOptions(
            languages=args.languages.split("+"),
            max_retries=options.max_retries,
            retry_base_delay_ms=options.retry_base_delay_ms,
        )

    image_path = Path(args.image)
    try:
        result = pipeline.run(image_path.read_bytes(), options=options, owner=args.owner, filename=image_path.name)
    except CustomException as e:
        print(f"Receipt extraction failed [{e.kind}]: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Cannot read {image_path}: {e}", file=sys.stderr)
        return 1

    print(result.model_dump_json(indent=2, exclude={"lines", "words"}))
    return 0


if __name__ == "__main__":
    sys.exit(main())
