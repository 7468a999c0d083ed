"""FadNote Meta information.
   FadNote stores client-side encrypted notes that can be read exactly once.
"""
__title__ = 'fadnote'
__description__ = (
   'FadNote stores client-side encrypted notes that are deleted '
   'after their first read.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2026 FadNote Contributors'
__author__ = 'FadNote Contributors'
__author_email__ = 'dev@fadnote.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/fadnote/fadnote'
