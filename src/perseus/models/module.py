"""Go module, module version, and dependency edge models.

Versions are stored without their leading "v"; a dependency edge links
two module versions, the dependent and the module it depends on.
"""

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from perseus.models.base import Base, CreatedAtMixin


class Module(Base, CreatedAtMixin):
    """A Go module, identified by its module path."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    versions: Mapped[list["ModuleVersion"]] = relationship(
        back_populates="module",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Module {self.name}>"


class ModuleVersion(Base, CreatedAtMixin):
    """A released version of a module."""

    __table_args__ = (
        UniqueConstraint("module_id", "version", name="uc_module_version_module_id_version"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module_id: Mapped[int] = mapped_column(
        ForeignKey("module.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version: Mapped[str] = mapped_column(String(128), nullable=False)

    module: Mapped[Module] = relationship(back_populates="versions")

    def __repr__(self) -> str:
        return f"<ModuleVersion {self.module_id}@v{self.version}>"


class ModuleDependency(Base):
    """A direct dependency of one module version on another."""

    dependent_id: Mapped[int] = mapped_column(
        ForeignKey("module_version.id", ondelete="CASCADE"),
        primary_key=True,
    )
    dependee_id: Mapped[int] = mapped_column(
        ForeignKey("module_version.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
