"""
Image processing algorithms: collage layout, procedural masks,
background removal and the operation pipeline.
"""
