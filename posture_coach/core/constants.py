"""
系统常量配置
"""


class Constants:
    """系统常量"""
    # 关键点可见度阈值（严格大于才视为可见）
    VISIBILITY_THRESHOLD = 0.8

    # 膝关节角度分段（度），从高到低依次判断
    STAND_READY_ABOVE = 160.0   # > 160 站直
    DESCEND_ABOVE = 100.0       # (100, 160] 下蹲中
    GOOD_DEPTH_ABOVE = 80.0     # (80, 100] 深度合格，<= 80 完成

    # 相机配置
    CAMERA_WIDTH = 1280
    CAMERA_HEIGHT = 720
    CAMERA_SOURCE = 0
    WARMUP_TIMEOUT = 5.0        # 等待首帧超时（秒）
    WARMUP_POLL_INTERVAL = 0.05

    # 推理引擎配置
    POSE_BACKEND = "mediapipe"
    POSE_DELEGATE = "GPU"
    POSE_MODEL_URL = (
        "https://storage.googleapis.com/mediapipe-models/pose_landmarker/"
        "pose_landmarker_lite/float16/1/pose_landmarker_lite.task"
    )
    LATENCY_SMOOTHING = 0.7

    # 主循环配置
    MAX_FPS = 30.0
    HEARTBEAT_INTERVAL = 150
