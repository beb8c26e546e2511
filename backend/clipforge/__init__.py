"""
Batch game-clip processing backend
"""
