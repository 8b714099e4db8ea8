'''Rewrite git history dates so that commits fall outside opening hours.'''

__version__ = "0.2.0"
