"""
mymemories - личный каталог категорий и ссылок с шифрованием категорий
паролем и параллельной проверкой доступности ссылок.
"""

__version__ = "0.1.0"
