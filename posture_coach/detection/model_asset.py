"""
模型文件解析
===========

模型引用可以是本地路径或 http(s) URL；URL 首次使用时下载到缓存目录。
"""
import shutil
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Union

from ..core.logger import logger


def is_remote(ref: str) -> bool:
    return urllib.parse.urlparse(str(ref)).scheme in ("http", "https")


def resolve_model_asset(ref: Union[str, Path], cache_dir: Union[str, Path] = "models") -> Path:
    """
    解析模型引用为本地文件路径

    Args:
        ref: 本地路径或 URL
        cache_dir: URL 下载缓存目录

    Returns:
        Path: 本地模型文件路径

    Raises:
        FileNotFoundError: 本地文件不存在
        RuntimeError: 下载失败
    """
    ref = str(ref)
    if not is_remote(ref):
        path = Path(ref).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Pose model file not found: {path}")
        return path

    filename = Path(urllib.parse.urlparse(ref).path).name or "pose_model.task"
    cache = Path(cache_dir).expanduser()
    cache.mkdir(parents=True, exist_ok=True)
    model_path = cache / filename

    if model_path.exists() and model_path.stat().st_size > 1024:
        logger.debug(f"使用缓存模型: {model_path}")
        return model_path

    logger.info(f"下载姿态模型: {ref} -> {model_path}")
    tmp_path = model_path.with_suffix(model_path.suffix + ".tmp")
    try:
        with urllib.request.urlopen(ref, timeout=60) as response, tmp_path.open("wb") as handle:
            shutil.copyfileobj(response, handle)
        tmp_path.replace(model_path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise RuntimeError(
            f"Pose model download failed: {ref}\n"
            f"Set pose.model in system_config.json to a local file. Error: {e}"
        ) from e

    return model_path
