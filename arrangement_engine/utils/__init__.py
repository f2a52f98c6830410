"""
Money and calendar helpers shared by the engine.
"""
