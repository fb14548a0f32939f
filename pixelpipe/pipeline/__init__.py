"""
Image Processing Pipeline

Stages, in fixed order:
1. Normalize - JPEG to PNG
2. Upscale - Real-ESRGAN 4x (optional)
3. Remove background - rembg (optional)
"""
