"""POSIX permission sets and their ``rwxr-x---`` string form.

Example::

    perms = PermissionSet.from_string("rwxr-x---")
    perms.mode         # 0o750
    str(perms)         # "rwxr-x---"
    PermissionSet.from_mode(0o644).to_string()  # "rw-r--r--"
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from ctxfs.kernel.exceptions import ErrorKind, FileSystemError

_CLASSES = ("owner", "group", "others")
_BITS = (("r", 0o4), ("w", 0o2), ("x", 0o1))


class Permission(StrEnum):
    """A single permission bit, named the way ``PosixFilePermission`` names them."""

    OWNER_READ = "owner_read"
    OWNER_WRITE = "owner_write"
    OWNER_EXECUTE = "owner_execute"
    GROUP_READ = "group_read"
    GROUP_WRITE = "group_write"
    GROUP_EXECUTE = "group_execute"
    OTHERS_READ = "others_read"
    OTHERS_WRITE = "others_write"
    OTHERS_EXECUTE = "others_execute"


# Permission -> mode bit, in string order
_PERMISSION_BITS: tuple[tuple[Permission, int], ...] = tuple(
    (Permission(f"{cls}_{name}"), bit << (3 * (2 - index)))
    for index, cls in enumerate(_CLASSES)
    for name, bit in (("read", 0o4), ("write", 0o2), ("execute", 0o1))
)


class PermissionSet(BaseModel):
    """Immutable owner/group/others x read/write/execute permission set."""

    model_config = ConfigDict(frozen=True)

    permissions: frozenset[Permission] = frozenset()

    @classmethod
    def from_string(cls, perms: str) -> PermissionSet:
        """Parse a 9-character symbolic permission string such as ``rwxr-x---``.

        Raises
        ------
        FileSystemError
            With kind ``INVALID_ARGUMENT`` if the string is malformed.
        """
        if not isinstance(perms, str) or len(perms) != 9:
            raise FileSystemError(
                ErrorKind.INVALID_ARGUMENT, f"Invalid permission string {perms!r}"
            )

        granted: set[Permission] = set()
        for index, (permission, _) in enumerate(_PERMISSION_BITS):
            letter = _BITS[index % 3][0]
            char = perms[index]
            if char == letter:
                granted.add(permission)
            elif char != "-":
                raise FileSystemError(
                    ErrorKind.INVALID_ARGUMENT,
                    f"Invalid permission string {perms!r}: expected '{letter}' or '-' "
                    f"at position {index}",
                )
        return cls(permissions=frozenset(granted))

    @classmethod
    def from_mode(cls, mode: int) -> PermissionSet:
        """Build a set from the permission bits of an ``st_mode`` value."""
        return cls(
            permissions=frozenset(p for p, bit in _PERMISSION_BITS if mode & bit)
        )

    @property
    def mode(self) -> int:
        """The permission bits as an integer suitable for ``os.chmod``."""
        result = 0
        for permission, bit in _PERMISSION_BITS:
            if permission in self.permissions:
                result |= bit
        return result

    def to_string(self) -> str:
        """Serialize to the 9-character symbolic form."""
        return "".join(
            _BITS[index % 3][0] if permission in self.permissions else "-"
            for index, (permission, _) in enumerate(_PERMISSION_BITS)
        )

    def __contains__(self, permission: object) -> bool:
        return permission in self.permissions

    def __str__(self) -> str:
        return self.to_string()


def parse_mode(perms: str | None, default: int) -> int:
    """Return the mode for an optional permission string, or ``default``."""
    if perms is None:
        return default
    return PermissionSet.from_string(perms).mode


__all__ = ["Permission", "PermissionSet", "parse_mode"]
