"""Geodesy Bounded Context.

Responsible for positions on the WGS84 ellipsoid:
- Value Objects: GeodeticPosition, CartesianPosition
- Services: to_cartesian / to_geodetic, local vertical
"""
