"""
Diff Engine
Reference resolution, connection algebra, patch application and batch transactions
"""
