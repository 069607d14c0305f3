"""
Common
====================

Infrastructure shared by the algorithms: callbacks, recursive estimators,
loggers, exploration noises, trainers and utilities.
"""
