"""
异常类型定义
===========

- AcquisitionError: 相机不可用 / 权限被拒 / 预热超时 / 运行中断流（会话致命）
- ModelLoadError: 模型下载、解析失败或后端不支持（启动致命）
- EngineNotReadyError: 模型尚未加载完成时调用 start()
- ComputationError: 几何退化（点重合），单帧内本地恢复
- InferenceError: 推理引擎单帧失败，跳过本帧继续循环
- TimestampOrderError: 时间戳未严格递增，属于调用方用法错误
"""


class PostureCoachError(Exception):
    """所有自定义异常的基类"""


class AcquisitionError(PostureCoachError):
    """相机获取失败"""


class ModelLoadError(PostureCoachError):
    """姿态模型加载失败"""


class EngineNotReadyError(PostureCoachError):
    """推理引擎尚未就绪"""


class ComputationError(PostureCoachError):
    """关节角度无法计算（退化几何）"""


class InferenceError(PostureCoachError):
    """单帧推理失败"""


class TimestampOrderError(PostureCoachError, ValueError):
    """推理时间戳未严格递增"""
