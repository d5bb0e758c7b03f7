"""
Webcam Filter Engine
====================

Real-time stylized filters for live webcam frames, with photo capture.

Components:
- pixel_buffer.py: RGBA frame buffer
- convolution.py: Separable Gaussian blur
- edges.py: Sobel edge detection
- effects.py: The filter effect catalog (Normal, Black & White, ... Neon)
- dispatch.py: Filter id -> effect resolution (by filter name)
- camera.py: Webcam source and camera error taxonomy
- frame_loop.py: Per-frame capture / filter / present loop
- capture.py: Snapshots of the filtered frame and async upload
- services.py / database.py: Filter catalog and photo storage collaborators
- models.py: Pydantic request/response models
- main.py: FastAPI application
"""

__version__ = "1.0.0"
