"""
Prometheus exporter for PurpleAir air-quality sensors.

Polls each sensor's local /json status document and republishes the
readings as labeled gauges on an HTTP endpoint.
"""

__version__ = "0.1.0"
