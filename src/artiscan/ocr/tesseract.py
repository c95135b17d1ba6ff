from __future__ import annotations

import json
import os
import queue
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np
from PIL import Image
import tessdata
from tesserocr import PSM, PyTessBaseAPI

from .recognizer import RecognitionResult, TextRecognizer
from .vision import preprocess_for_ocr, save_debug_image

DEFAULT_LANG = "eng"
DEFAULT_POOL_SIZE = 4

# Characters that show up in values regardless of vocabulary
_VALUE_CHARS = "0123456789+-.,%:/'() "


def _has_lang(path: Path, lang: str) -> bool:
    return path.is_dir() and (path / f"{lang}.traineddata").exists()


def _candidate_tessdata_paths() -> List[Path]:
    """
    Potential tessdata locations to try, ordered by preference.
    """
    candidates: List[Path] = []

    env_prefix = os.getenv("TESSDATA_PREFIX")
    if env_prefix:
        candidates.append(Path(env_prefix))

    try:
        candidates.append(Path(tessdata.data_path()))
    except (AttributeError, OSError, RuntimeError):
        pass

    # Site-packages layout: <...>/site-packages/tessdata/share/tessdata
    pkg_dir = Path(tessdata.__file__).resolve().parent
    candidates.append(pkg_dir.parent / "share" / "tessdata")

    appdata = os.getenv("APPDATA")
    if appdata:
        appdata_path = Path(appdata)
        py_ver = f"Python{sys.version_info.major}{sys.version_info.minor}"
        candidates.append(appdata_path / "Python" / "share" / "tessdata")
        candidates.append(appdata_path / "Python" / py_ver / "share" / "tessdata")

    unique: List[Path] = []
    for candidate in candidates:
        if candidate not in unique:
            unique.append(candidate)
    return unique


def resolve_model(model_path: Optional[Path], lang: str = DEFAULT_LANG) -> tuple[Path, str]:
    """
    (tessdata dir, lang) for a `<lang>.traineddata` model file, or the first
    discovered tessdata dir that has `lang` when no file is given.
    """
    if model_path is not None:
        model_path = Path(model_path)
        if model_path.is_dir():
            if not _has_lang(model_path, lang):
                raise RuntimeError(f"{model_path} has no {lang}.traineddata")
            return model_path, lang
        if model_path.suffix != ".traineddata" or not model_path.is_file():
            raise RuntimeError(f"model file {model_path} is not a .traineddata file")
        return model_path.parent, model_path.stem

    candidates = _candidate_tessdata_paths()
    for candidate in candidates:
        if _has_lang(candidate, lang):
            return candidate, lang

    searched = "\n  ".join(str(c) for c in candidates)
    raise RuntimeError(
        f"Could not find tessdata with {lang}.traineddata. Checked:\n  {searched}"
    )


def load_char_whitelist(vocabulary_path: Optional[Path]) -> Optional[str]:
    """
    Characters allowed in recognized text: every character of every
    vocabulary entry plus digits and value punctuation.
    """
    if vocabulary_path is None:
        return None
    raw = json.loads(Path(vocabulary_path).read_text(encoding="utf-8"))
    chars = set(_VALUE_CHARS)

    def _collect(node) -> None:
        if isinstance(node, str):
            chars.update(node)
        elif isinstance(node, dict):
            for key, value in node.items():
                _collect(value)
        elif isinstance(node, list):
            for value in node:
                _collect(value)

    _collect(raw)
    return "".join(sorted(chars))


def _as_pil_image(image: np.ndarray) -> Image.Image:
    if image.ndim == 2:
        return Image.fromarray(image)
    if image.ndim == 3 and image.shape[2] == 3:
        # OpenCV images are BGR; convert to RGB
        return Image.fromarray(image[:, :, ::-1])
    raise ValueError(f"Unsupported image shape for OCR: {image.shape}")


class TesseractRecognizer(TextRecognizer):
    """
    tesserocr-backed recognizer.

    PyTessBaseAPI sessions are not thread-safe, so `open()` loads a fixed
    pool and each call borrows one; the model itself is never modified.
    """

    def __init__(
        self,
        model_path: Optional[Path] = None,
        vocabulary_path: Optional[Path] = None,
        *,
        lang: str = DEFAULT_LANG,
        pool_size: int = DEFAULT_POOL_SIZE,
        psm: int = PSM.SINGLE_LINE,
    ) -> None:
        super().__init__()
        if pool_size < 1:
            raise ValueError("pool_size must be >= 1")
        self.model_path = model_path
        self.vocabulary_path = vocabulary_path
        self.lang = lang
        self.pool_size = pool_size
        self.psm = psm
        self._pool: Optional[queue.Queue] = None
        self._apis: List[PyTessBaseAPI] = []

    def open(self) -> None:
        if self._pool is not None:
            return
        tessdata_dir, lang = resolve_model(self.model_path, self.lang)
        whitelist = load_char_whitelist(self.vocabulary_path)

        pool: queue.Queue = queue.Queue()
        for _ in range(self.pool_size):
            api = PyTessBaseAPI(path=str(tessdata_dir), lang=lang, psm=self.psm)
            if whitelist:
                api.SetVariable("tessedit_char_whitelist", whitelist)
            self._apis.append(api)
            pool.put(api)
        self._pool = pool

        version = self._apis[0].Version() if hasattr(self._apis[0], "Version") else ""
        print(
            f"[ocr_backend] tesseract={version.strip()} tessdata={tessdata_dir} "
            f"lang={lang} sessions={self.pool_size}",
            flush=True,
        )

    def close(self) -> None:
        for api in self._apis:
            api.End()
        self._apis = []
        self._pool = None

    def _recognize(self, pixels: np.ndarray) -> RecognitionResult:
        if self._pool is None:
            raise RuntimeError("TesseractRecognizer.open() must be called before recognize()")

        processed = preprocess_for_ocr(pixels)
        save_debug_image("ocr_input", processed)
        pil_img = _as_pil_image(processed)

        api = self._pool.get()
        try:
            api.SetImage(pil_img)
            text = api.GetUTF8Text() or ""
            conf = api.MeanTextConf()
        finally:
            self._pool.put(api)

        text = " ".join(text.split())
        if not text:
            return RecognitionResult("", 0.0)
        return RecognitionResult(text, max(0, conf) / 100.0)
