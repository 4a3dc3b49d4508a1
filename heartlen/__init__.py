"""
HeartLen – camera photoplethysmography (PPG) heart-rate and HRV monitor.
Cover the phone / laptop camera with a fingertip (flash on); the system
combines five sampled pixels per frame into a PPG signal, detects its
valleys, and estimates BPM, SDNN and signal quality.
"""

__version__ = "0.1.0"
__author__ = "heartlen"
