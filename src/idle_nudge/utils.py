import math
import time

__all__ = ["now_epoch", "epoch_to_utc_str", "ms_to_epoch"]


def now_epoch() -> float:
    """获取当前 epoch 秒"""
    return time.time()


def epoch_to_utc_str(epoch: float | None) -> str | None:
    """epoch 秒转为 'YYYY-MM-DDTHH:MM:SSZ'"""
    if epoch is None:
        return None
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(epoch))


def ms_to_epoch(value) -> float | None:
    # 插件宿主的时间戳是毫秒
    if value is None:
        return None
    try:
        ms = float(value)
    except (TypeError, ValueError):
        return None
    return ms / 1000.0 if math.isfinite(ms) else None
