# Credits: Kwark Team - 2024

class KwarkError(Exception):
    """Base class for everything that can go wrong while decoding an asset."""


class FileError(KwarkError):
    """Opening, seeking or reading the underlying file failed."""


class UnexpectedEOFError(KwarkError):
    """A read returned fewer bytes than the structure requires."""


class TruncatedDataError(KwarkError):
    """A declared count or byte range does not fit in the available data."""


class InvalidArchiveError(KwarkError):
    pass


class EntryNotFoundError(KwarkError, KeyError):
    pass


class UnsupportedVersionError(KwarkError):
    pass


class UnsupportedGroupSkinError(KwarkError):
    pass


class InvalidFrameCountError(KwarkError):
    pass


class InvalidGroupTypeError(KwarkError):
    pass


class InvalidSkyTextureError(KwarkError):
    pass


class MissingEntityError(KwarkError):
    pass


class UnknownTextureSlotError(KwarkError):
    pass


class EntityParseError(KwarkError):
    pass
