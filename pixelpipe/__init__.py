"""PixelPipe - upload, upscale and cut out images over HTTP."""

__version__ = "1.0.0"
