"""
Reports: usage statistics, markdown export and daily rollups
"""
