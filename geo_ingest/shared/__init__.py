"""
Общие модели, которыми обмениваются шина, пайплайн и хранилища.
"""
