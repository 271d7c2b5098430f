"""
该目录主要用于数据库操作
"""
