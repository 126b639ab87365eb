#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Dependency / Camera Preflight Check Script

Check Python dependencies, configuration, pose model asset and camera access
"""

import sys
from pathlib import Path

current_dir = Path(__file__).parent


def _check_imports() -> bool:
    try:
        import cv2
        print(f"[OK] OpenCV {cv2.__version__}")
    except ImportError:
        print("[FAIL] OpenCV (opencv-python) not installed")
        return False

    try:
        import numpy as np
        print(f"[OK] NumPy {np.__version__}")
    except ImportError:
        print("[FAIL] NumPy not installed")
        return False

    return True


def _check_backend(backend: str) -> bool:
    if backend == "mediapipe":
        try:
            import mediapipe as mp
            print(f"[OK] MediaPipe {mp.__version__}")
            return True
        except ImportError:
            print("[FAIL] MediaPipe not installed (pose.backend=mediapipe)")
            return False

    if backend == "yolo":
        try:
            import torch
            import ultralytics
            cuda = "CUDA available" if torch.cuda.is_available() else "CPU only"
            print(f"[OK] Ultralytics {ultralytics.__version__}, PyTorch {torch.__version__} ({cuda})")
            return True
        except ImportError as e:
            print(f"[FAIL] YOLO backend dependencies missing: {e}")
            return False

    print(f"[FAIL] Unknown pose backend: {backend}")
    return False


def preflight_check(config_path=None, check_camera: bool = True):
    """
    Execute preflight checks

    Args:
        config_path: Configuration file path (optional)
        check_camera: Open the camera and wait for the first frame

    Returns:
        bool: Whether preflight passed
    """
    print("\n" + "="*70)
    print("Running system preflight checks...")
    print("="*70)

    print(f"\n[OK] Python {sys.version_info.major}.{sys.version_info.minor}")

    if not _check_imports():
        return False

    # Configuration
    from posture_coach.core.config_loader import apply_env_overrides, find_config_path, load_config

    config_file = Path(config_path) if config_path is not None else find_config_path()
    try:
        config = apply_env_overrides(load_config(config_file))
        print(f"[OK] Config file: {config_file}")
    except FileNotFoundError:
        print(f"[FAIL] Config file not found: {config_file}")
        return False
    except ValueError as e:
        print(f"[FAIL] Config file invalid: {e}")
        return False

    backend = config.pose.get("backend", "mediapipe")
    if not _check_backend(backend):
        return False

    # Pose model asset
    from posture_coach.detection.model_asset import is_remote, resolve_model_asset

    model_ref = str(config.pose.get("model"))
    try:
        cache_dir = config.resolve_path(config.paths.get("model_cache_dir", "models"))
        if not is_remote(model_ref):
            model_ref = str(config.resolve_path(model_ref))
        model_path = resolve_model_asset(model_ref, cache_dir)
        print(f"[OK] Pose model: {model_path}")
    except (FileNotFoundError, RuntimeError) as e:
        print(f"[FAIL] Pose model unavailable: {e}")
        return False

    # Camera
    if check_camera:
        print("\n[CHECKING] Camera availability...")
        from posture_coach.camera import CameraConstraints, FrameAcquisition
        from posture_coach.core.errors import AcquisitionError

        acquisition = FrameAcquisition.from_config(config)
        try:
            handle = acquisition.acquire(CameraConstraints(
                width=int(config.camera.get("width", 1280)),
                height=int(config.camera.get("height", 720)),
            ))
        except AcquisitionError as e:
            print(f"[FAIL] Camera check failed: {e}")
            print("\nTroubleshooting:")
            print("1. Check camera connection (or camera.source in system_config.json)")
            print("2. Ensure no other application is using the camera")
            print("3. Ensure proper permissions (video group on Linux)")
            return False

        telemetry = handle.camera.get_telemetry()
        acquisition.release(handle)
        print(f"[OK] Camera source {config.camera.get('source')!r} delivering frames "
              f"(status={telemetry['status']})")

    print("\n" + "="*70)
    print("Preflight checks completed successfully")
    print("="*70 + "\n")

    return True


def main():
    """Command line entry point"""
    config_path = sys.argv[1] if len(sys.argv) > 1 else None
    success = preflight_check(config_path)
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
