from .ocr_result import BoundingBox, OCRLine, OCRWord, RecognitionResult
from .receipt import DerivativeRole, RawImage, ImageMetadata, ImageDerivative, StoredAsset
from .parsers import ParsedItem, CategorizedItem
from .store import StoreInfo, ReceiptMetadata
from .classifier import CategoryKeywords, CategoryTable
from .extraction import PipelineState, PipelineOptions, ReceiptExtractionResult
