"""
Rendering Module
===============

Template rasterization with Pillow.

Components:
- resolver: Runtime parameter binding
- text_layout: Line breaking, wrapping and anchoring
- fonts: Cached font resolution with background downloads
- image_source: Image fetching and decoding
- compositor: Object-fit placement and placeholders
- surface: RGBA drawing surface
- renderer: Render driver
"""
