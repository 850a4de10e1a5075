import io

from PIL import Image
import imagehash


def get_image_fingerprint(image_or_bytes):
    '''
    Compute the perceptual hash (phash) of an image so re-uploads of the
    same receipt can be recognised. Accepts a file path, raw bytes or a PIL Image.
    '''

    if isinstance(image_or_bytes, (bytes, bytearray)):
        with Image.open(io.BytesIO(image_or_bytes)) as image:
            return str(imagehash.phash(image))
    if isinstance(image_or_bytes, str):
        with Image.open(image_or_bytes) as image:
            return str(imagehash.phash(image))

    return str(imagehash.phash(image_or_bytes))
