# app/services/image_service.py
"""食事写真を記録にインライン保存できる小さな画像へ変換する"""

import asyncio
import base64
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Dict, Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from app.config import settings
from app.errors import ImageDecodeError

logger = logging.getLogger(__name__)

Destination = Tuple[str, int]  # (meal slot, photo index)

_MIME = {"WEBP": "image/webp", "JPEG": "image/jpeg", "PNG": "image/png"}


@dataclass(frozen=True)
class EncodedImage:
    data_url: str
    width: int
    height: int
    mime: str
    size: int  # エンコード後のバイト数


def target_size(width: int, height: int, max_side: int) -> Tuple[int, int]:
    """長辺を max_side に収める（拡大はしない・縦横比は維持）"""
    longest = max(width, height)
    if longest <= max_side:
        return width, height
    scale = max_side / longest
    if width >= height:
        return max_side, max(1, round(height * scale))
    return max(1, round(width * scale)), max_side


class ImagePipeline:
    """
    decode → resize → encode の3段階を ``asyncio.to_thread`` で実行する。

    同じ保存先 (meal, index) への要求には単調増加の request id を振り、
    後から開始された要求がある場合は古い要求の結果（成功・失敗とも）を捨てる。
    保存先に残るのは最後に「開始」された要求の結果。
    """

    def __init__(self, max_side: int = 640, quality: int = 80, fmt: str = "WEBP"):
        self.max_side = max_side
        self.quality = quality
        self.fmt = fmt.upper()
        self.mime = _MIME.get(self.fmt, f"image/{self.fmt.lower()}")
        self._latest: Dict[Destination, int] = {}

    @classmethod
    def from_settings(cls) -> "ImagePipeline":
        return cls(settings.IMAGE_MAX_SIDE, settings.IMAGE_QUALITY, settings.IMAGE_FORMAT)

    # ---- 各段階（スレッドで実行） ----
    def _decode(self, raw: bytes) -> Image.Image:
        if not raw:
            raise ImageDecodeError("empty image data")
        try:
            img = Image.open(BytesIO(raw))
            img.load()
            img = ImageOps.exif_transpose(img)
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
            raise ImageDecodeError(f"cannot decode image: {e}") from e
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
        return img

    def _resize(self, img: Image.Image) -> Image.Image:
        size = target_size(img.width, img.height, self.max_side)
        if size == img.size:
            return img
        return img.resize(size, Image.Resampling.LANCZOS)

    def _encode(self, img: Image.Image) -> EncodedImage:
        if self.fmt == "JPEG" and img.mode != "RGB":
            img = img.convert("RGB")
        buf = BytesIO()
        img.save(buf, format=self.fmt, quality=self.quality)
        data = buf.getvalue()
        encoded = base64.b64encode(data).decode("utf-8")
        return EncodedImage(
            data_url=f"data:{self.mime};base64,{encoded}",
            width=img.width,
            height=img.height,
            mime=self.mime,
            size=len(data),
        )

    async def normalize_image(self, raw: bytes) -> EncodedImage:
        img = await asyncio.to_thread(self._decode, raw)
        img = await asyncio.to_thread(self._resize, img)
        return await asyncio.to_thread(self._encode, img)

    # ---- 保存先ごとの順序制御 ----
    def begin(self, destination: Destination) -> int:
        request_id = self._latest.get(destination, 0) + 1
        self._latest[destination] = request_id
        return request_id

    def is_current(self, destination: Destination, request_id: int) -> bool:
        return self._latest.get(destination) == request_id

    async def process(self, destination: Destination, raw: bytes) -> Optional[EncodedImage]:
        """新しい要求に追い越された場合は None"""
        request_id = self.begin(destination)
        try:
            result = await self.normalize_image(raw)
        except ImageDecodeError:
            if not self.is_current(destination, request_id):
                logger.info(f"[IMAGE] stale failure discarded dest={destination} request_id={request_id}")
                return None
            raise
        if not self.is_current(destination, request_id):
            logger.info(f"[IMAGE] stale result discarded dest={destination} request_id={request_id}")
            return None
        logger.info(
            f"[IMAGE] normalized dest={destination} request_id={request_id} "
            f"{result.width}x{result.height} {result.size} bytes"
        )
        return result
