"""
Background Jobs Module

Handles scheduled sweeps for:
- Shipment status reconciliation against the tracking source
- Delivery alert classification
"""
