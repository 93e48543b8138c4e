"""
Ошибки формата и данных сжатого файла Хаффмана.
"""


class HuffmanError(ValueError):
    pass


class CorruptHeaderError(HuffmanError):
    """Заголовок контейнера или сериализованное дерево повреждены."""


class TruncatedContentError(HuffmanError):
    """Данных меньше, чем объявлено, или декодер остановился посреди кода."""


class ChecksumMismatchError(HuffmanError):
    """CRC32 распакованных данных не совпадает с сохранённым."""
