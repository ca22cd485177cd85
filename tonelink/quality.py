# quality.py
#
# Coarse signal quality for the operator. Nothing in detection reads this.

from enum import Enum


class SignalQuality(Enum):
    GOOD = 'good'
    FAIR = 'fair'
    POOR = 'poor'
    NONE = 'none'


def estimate_signal_quality(peak: float, total: float, threshold: float, length: int) -> SignalQuality:
    """
    Rates a frame from its peak strength and spectral clarity.

    Args:
        peak: Highest magnitude in the frame
        total: Sum of all magnitudes in the frame
        threshold: Current detection threshold
        length: Number of bins in the frame

    Returns:
        SignalQuality.NONE when the peak does not clear the threshold,
        otherwise GOOD, FAIR or POOR
    """
    if peak <= threshold or length < 2:
        return SignalQuality.NONE

    strength = (peak - threshold) / (255 - threshold) if threshold < 255 else 0.0
    average_other = (total - peak) / (length - 1)
    clarity = 1 - average_other / (peak + 1e-6)
    combined = strength * 0.4 + clarity * 0.6

    if combined > 0.7:
        return SignalQuality.GOOD
    if combined > 0.4:
        return SignalQuality.FAIR
    return SignalQuality.POOR
