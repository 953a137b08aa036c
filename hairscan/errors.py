from __future__ import annotations


class HairScanError(Exception):
    """Base exception for hairscan errors"""
    pass


class InvalidRegion(HairScanError, ValueError):
    """Crop geometry or pixel buffer cannot be scored"""
    pass


class DegenerateLandmarks(HairScanError):
    """Anchor points are coincident or collinear"""
    pass


class InternalProcessingError(HairScanError):
    """Unexpected failure while scoring a single region"""
    def __init__(self, message: str, region: str = ""):
        super().__init__(message)
        self.region = region


class AnalysisError(HairScanError):
    """Whole-face precondition failed; no result is produced"""
    pass


class FaceQualityInsufficient(AnalysisError):
    """Face rejected by the quality gate"""
    pass


class ImageDecodeFailure(AnalysisError):
    """Image buffer missing or undecodable"""
    pass


__all__ = [
    "HairScanError",
    "InvalidRegion",
    "DegenerateLandmarks",
    "InternalProcessingError",
    "AnalysisError",
    "FaceQualityInsufficient",
    "ImageDecodeFailure",
]
