from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    DDL,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    event,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from unilib.core.timeutils import utcnow
from unilib.db.session import Base


# ======================
# Enums
# ======================

class UserRole(str, Enum):
    ADMIN = "admin"
    LIBRARIAN = "librarian"
    FACULTY = "faculty"
    STUDENT = "student"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    GRADUATED = "graduated"


class CopyStatus(str, Enum):
    AVAILABLE = "available"
    BORROWED = "borrowed"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"
    LOST = "lost"
    DAMAGED = "damaged"
    WITHDRAWN = "withdrawn"


class CopyCondition(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    DAMAGED = "damaged"


class BorrowStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    RETURNED = "returned"
    OVERDUE = "overdue"
    LOST = "lost"


class ReservationStatus(str, Enum):
    ACTIVE = "active"
    FULFILLED = "fulfilled"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class FineType(str, Enum):
    OVERDUE = "overdue"
    LOST_BOOK = "lost_book"
    DAMAGED_BOOK = "damaged_book"
    PROCESSING_FEE = "processing_fee"
    OTHER = "other"


class FineStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    WAIVED = "waived"
    DISPUTED = "disputed"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    ONLINE = "online"
    WAIVED = "waived"


class AccountRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class NotificationType(str, Enum):
    DUE_REMINDER = "due_reminder"
    OVERDUE_NOTICE = "overdue_notice"
    RESERVATION_READY = "reservation_ready"
    FINE_NOTICE = "fine_notice"
    ACCOUNT_STATUS = "account_status"
    GENERAL = "general"


def _enum_column(enum_cls: type[Enum], name: str) -> SqlEnum:
    # Guardamos el value ("approved") y no el name, igual que los CHECK
    return SqlEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


# ======================
# Department
# ======================

class Department(Base):
    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    users: Mapped[list["User"]] = relationship("User", back_populates="department")


# ======================
# User
# ======================

class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "student_id IS NULL OR LENGTH(student_id) >= 5",
            name="chk_users_student_id",
        ),
        CheckConstraint(
            "graduation_date IS NULL OR graduation_date >= enrollment_date",
            name="chk_users_graduation_date",
        ),
        CheckConstraint(
            "max_books_allowed > 0 AND max_books_allowed <= 50",
            name="chk_users_max_books",
        ),
        CheckConstraint(
            "max_days_allowed > 0 AND max_days_allowed <= 365",
            name="chk_users_max_days",
        ),
        Index("idx_users_role_status", "role", "account_status"),
        Index(
            "idx_users_active",
            "id",
            postgresql_where=text("account_status = 'active' AND is_deleted = false"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[str | None] = mapped_column(String(50), unique=True, nullable=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[UserRole] = mapped_column(
        _enum_column(UserRole, "user_role"),
        nullable=False,
        default=UserRole.STUDENT,
    )
    account_status: Mapped[AccountStatus] = mapped_column(
        _enum_column(AccountStatus, "account_status"),
        nullable=False,
        default=AccountStatus.ACTIVE,
    )

    department_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
    )

    max_books_allowed: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    max_days_allowed: Mapped[int] = mapped_column(Integer, nullable=False, default=14)
    enrollment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    graduation_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    department: Mapped["Department | None"] = relationship("Department", back_populates="users")
    borrow_requests: Mapped[list["BorrowRequest"]] = relationship(
        "BorrowRequest",
        back_populates="user",
        foreign_keys="BorrowRequest.user_id",
    )
    reservations: Mapped[list["Reservation"]] = relationship("Reservation", back_populates="user")
    fines: Mapped[list["Fine"]] = relationship(
        "Fine",
        back_populates="user",
        foreign_keys="Fine.user_id",
    )
    notifications: Mapped[list["Notification"]] = relationship("Notification", back_populates="user")

    @property
    def is_active(self) -> bool:
        return self.account_status == AccountStatus.ACTIVE and not self.is_deleted


# ======================
# Catalog: Author / Publisher / Subject
# ======================

class Author(Base):
    __tablename__ = "authors"
    __table_args__ = (
        CheckConstraint(
            "death_date IS NULL OR death_date >= birth_date",
            name="chk_authors_dates",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    death_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    nationality: Mapped[str | None] = mapped_column(String(100), nullable=True)
    biography: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    book_links: Mapped[list["BookAuthor"]] = relationship(
        "BookAuthor",
        back_populates="author",
        cascade="all, delete-orphan",
    )


class Publisher(Base):
    __tablename__ = "publishers"
    __table_args__ = (
        CheckConstraint(
            "established_year IS NULL OR established_year >= 1400",
            name="chk_publishers_year",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    website: Mapped[str | None] = mapped_column(String(255), nullable=True)
    established_year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    books: Mapped[list["Book"]] = relationship("Book", back_populates="publisher")


book_subjects = Table(
    "book_subjects",
    Base.metadata,
    Column("book_id", Integer, ForeignKey("books.id", ondelete="CASCADE"), primary_key=True),
    Column("subject_id", Integer, ForeignKey("subjects.id", ondelete="CASCADE"), primary_key=True),
    Index("idx_book_subjects_subject", "subject_id"),
)


class Subject(Base):
    __tablename__ = "subjects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    parent_subject_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("subjects.id", ondelete="SET NULL"),
        nullable=True,
    )
    dewey_decimal: Mapped[str | None] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    parent: Mapped["Subject | None"] = relationship("Subject", remote_side=[id])
    books: Mapped[list["Book"]] = relationship(
        "Book",
        secondary=book_subjects,
        back_populates="subjects",
    )


# ======================
# Book
# ======================

class Book(Base):
    __tablename__ = "books"
    __table_args__ = (
        UniqueConstraint("isbn_13", name="uq_books_isbn_13"),
        UniqueConstraint("isbn_10", name="uq_books_isbn_10"),
        CheckConstraint(
            "total_copies >= 0 AND available_copies >= 0 AND available_copies <= total_copies",
            name="chk_books_copies",
        ),
        CheckConstraint("pages IS NULL OR pages > 0", name="chk_books_pages"),
        CheckConstraint(
            "acquisition_price IS NULL OR acquisition_price >= 0",
            name="chk_books_price",
        ),
        CheckConstraint("publication_year >= 1400", name="chk_books_year"),
        Index("idx_books_year", "publication_year"),
        Index("idx_books_shelf", "shelf_location"),
        Index(
            "idx_books_available",
            "id",
            postgresql_where=text("available_copies > 0 AND is_deleted = false"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    subtitle: Mapped[str | None] = mapped_column(String(500), nullable=True)
    isbn_13: Mapped[str | None] = mapped_column(String(13), nullable=True)
    isbn_10: Mapped[str | None] = mapped_column(String(10), nullable=True)

    publisher_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("publishers.id", ondelete="RESTRICT"),
        index=True,
        nullable=False,
    )
    publication_year: Mapped[int] = mapped_column(Integer, nullable=False)
    edition: Mapped[str | None] = mapped_column(String(50), nullable=True)
    pages: Mapped[int | None] = mapped_column(Integer, nullable=True)
    language: Mapped[str] = mapped_column(String(50), nullable=False, default="English")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    shelf_location: Mapped[str] = mapped_column(String(100), nullable=False)
    acquisition_date: Mapped[date | None] = mapped_column(Date, nullable=True, default=date.today)
    acquisition_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    total_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    available_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    publisher: Mapped["Publisher"] = relationship("Publisher", back_populates="books")
    author_links: Mapped[list["BookAuthor"]] = relationship(
        "BookAuthor",
        back_populates="book",
        cascade="all, delete-orphan",
        order_by="BookAuthor.author_order",
    )
    subjects: Mapped[list["Subject"]] = relationship(
        "Subject",
        secondary=book_subjects,
        back_populates="books",
    )
    copies: Mapped[list["BookCopy"]] = relationship(
        "BookCopy",
        back_populates="book",
        cascade="all, delete-orphan",
        order_by="BookCopy.id",
    )
    reservations: Mapped[list["Reservation"]] = relationship("Reservation", back_populates="book")

    @property
    def authors(self) -> list["Author"]:
        return [link.author for link in self.author_links]

    @property
    def publisher_name(self) -> str | None:
        return self.publisher.name if self.publisher else None


class BookAuthor(Base):
    __tablename__ = "book_authors"
    __table_args__ = (
        CheckConstraint("author_order > 0", name="chk_book_authors_order"),
        Index("idx_book_authors_author", "author_id"),
    )

    book_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("books.id", ondelete="CASCADE"),
        primary_key=True,
    )
    author_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("authors.id", ondelete="CASCADE"),
        primary_key=True,
    )
    author_order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    book: Mapped["Book"] = relationship("Book", back_populates="author_links")
    author: Mapped["Author"] = relationship("Author", back_populates="book_links")


# Índices full-text GIN: sólo existen en PostgreSQL
event.listen(
    Book.__table__,
    "after_create",
    DDL(
        "CREATE INDEX IF NOT EXISTS idx_books_title_fts ON books "
        "USING gin (to_tsvector('english', title || ' ' || COALESCE(subtitle, '')))"
    ).execute_if(dialect="postgresql"),
)
event.listen(
    Author.__table__,
    "after_create",
    DDL(
        "CREATE INDEX IF NOT EXISTS idx_authors_name_fts ON authors "
        "USING gin (to_tsvector('english', full_name))"
    ).execute_if(dialect="postgresql"),
)


# ======================
# BookCopy
# ======================

class BookCopy(Base):
    __tablename__ = "book_copies"
    __table_args__ = (
        UniqueConstraint("book_id", "copy_number", name="unique_book_copy_number"),
        Index("idx_book_copies_status", "status"),
        Index(
            "idx_book_copies_available",
            "book_id",
            postgresql_where=text("status = 'available' AND is_deleted = false"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    book_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("books.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    copy_number: Mapped[str] = mapped_column(String(50), nullable=False)
    barcode: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)
    status: Mapped[CopyStatus] = mapped_column(
        _enum_column(CopyStatus, "copy_status"),
        nullable=False,
        default=CopyStatus.AVAILABLE,
    )
    condition_rating: Mapped[CopyCondition] = mapped_column(
        _enum_column(CopyCondition, "copy_condition"),
        nullable=False,
        default=CopyCondition.GOOD,
    )
    acquired_date: Mapped[date | None] = mapped_column(Date, nullable=True, default=date.today)
    last_maintenance: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    book: Mapped["Book"] = relationship("Book", back_populates="copies")
    borrow_requests: Mapped[list["BorrowRequest"]] = relationship(
        "BorrowRequest",
        back_populates="book_copy",
    )


# ======================
# BorrowRequest
# ======================

class BorrowRequest(Base):
    __tablename__ = "borrow_requests"
    __table_args__ = (
        CheckConstraint(
            "renewal_count >= 0 AND renewal_count <= max_renewals",
            name="chk_renewal_count",
        ),
        CheckConstraint(
            "(approved_date IS NULL OR approved_date >= request_date) AND "
            "(due_date IS NULL OR due_date > approved_date) AND "
            "(return_date IS NULL OR return_date >= approved_date)",
            name="chk_borrow_dates",
        ),
        CheckConstraint(
            "(status = 'rejected' AND rejection_reason IS NOT NULL) OR status != 'rejected'",
            name="chk_borrow_rejection",
        ),
        CheckConstraint(
            "(status IN ('approved', 'returned', 'overdue', 'lost') "
            "AND approved_date IS NOT NULL AND due_date IS NOT NULL) "
            "OR status IN ('pending', 'rejected')",
            name="chk_borrow_approval",
        ),
        Index("idx_borrow_requests_status", "status"),
        Index(
            "idx_borrow_requests_due_date",
            "due_date",
            postgresql_where=text("due_date IS NOT NULL"),
        ),
        Index(
            "idx_borrow_requests_active",
            "user_id",
            "status",
            postgresql_where=text("status IN ('approved', 'overdue')"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    book_copy_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("book_copies.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    book_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("books.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    librarian_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    request_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    approved_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    return_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[BorrowStatus] = mapped_column(
        _enum_column(BorrowStatus, "borrow_status"),
        nullable=False,
        default=BorrowStatus.PENDING,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    renewal_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_renewals: Mapped[int] = mapped_column(Integer, nullable=False, default=2)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    user: Mapped["User"] = relationship(
        "User",
        back_populates="borrow_requests",
        foreign_keys=[user_id],
    )
    librarian: Mapped["User | None"] = relationship("User", foreign_keys=[librarian_id])
    book_copy: Mapped["BookCopy"] = relationship("BookCopy", back_populates="borrow_requests")
    book: Mapped["Book"] = relationship("Book")
    fines: Mapped[list["Fine"]] = relationship("Fine", back_populates="borrow_request")


# ======================
# Reservation
# ======================

class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint(
            "expiry_date IS NULL OR expiry_date > reservation_date",
            name="chk_reservation_dates",
        ),
        CheckConstraint("queue_position > 0", name="chk_queue_position"),
        # Una sola reserva ACTIVA por (usuario, libro)
        Index(
            "uq_active_user_book_reservation",
            "user_id",
            "book_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index(
            "idx_reservations_queue",
            "book_id",
            "queue_position",
            postgresql_where=text("status = 'active'"),
        ),
        Index("idx_reservations_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    book_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("books.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )

    reservation_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    queue_position: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        _enum_column(ReservationStatus, "reservation_status"),
        nullable=False,
        default=ReservationStatus.ACTIVE,
    )
    notification_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    user: Mapped["User"] = relationship("User", back_populates="reservations")
    book: Mapped["Book"] = relationship("Book", back_populates="reservations")


# ======================
# Fine
# ======================

class Fine(Base):
    __tablename__ = "fines"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="chk_fine_amount"),
        CheckConstraint("days_overdue IS NULL OR days_overdue >= 0", name="chk_fine_days"),
        CheckConstraint(
            "(status = 'paid' AND paid_date IS NOT NULL) OR "
            "(status = 'waived' AND waived_by_id IS NOT NULL AND waived_reason IS NOT NULL) OR "
            "status IN ('unpaid', 'disputed')",
            name="chk_fine_payment",
        ),
        CheckConstraint(
            "due_date IS NULL OR due_date >= fine_date",
            name="chk_fine_due_date",
        ),
        Index("idx_fines_user_status", "user_id", "status"),
        Index(
            "idx_fines_borrow_request",
            "borrow_request_id",
            postgresql_where=text("borrow_request_id IS NOT NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    borrow_request_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("borrow_requests.id", ondelete="SET NULL"),
        nullable=True,
    )
    waived_by_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    fine_type: Mapped[FineType] = mapped_column(
        _enum_column(FineType, "fine_type"),
        nullable=False,
        default=FineType.OVERDUE,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    days_overdue: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    fine_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_method: Mapped[PaymentMethod | None] = mapped_column(
        _enum_column(PaymentMethod, "payment_method"),
        nullable=True,
    )
    waived_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[FineStatus] = mapped_column(
        _enum_column(FineStatus, "fine_status"),
        nullable=False,
        default=FineStatus.UNPAID,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    user: Mapped["User"] = relationship("User", back_populates="fines", foreign_keys=[user_id])
    waived_by: Mapped["User | None"] = relationship("User", foreign_keys=[waived_by_id])
    borrow_request: Mapped["BorrowRequest | None"] = relationship(
        "BorrowRequest",
        back_populates="fines",
    )


# ======================
# AccountRequest
# ======================

class AccountRequest(Base):
    __tablename__ = "account_requests"
    __table_args__ = (
        CheckConstraint(
            "(status = 'rejected' AND rejection_reason IS NOT NULL) OR status != 'rejected'",
            name="chk_account_request_rejection",
        ),
        Index("idx_account_requests_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    student_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    department_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
    )
    university_card_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    request_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    status: Mapped[AccountRequestStatus] = mapped_column(
        _enum_column(AccountRequestStatus, "account_request_status"),
        nullable=False,
        default=AccountRequestStatus.PENDING,
    )
    reviewed_by_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_user_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    department: Mapped["Department | None"] = relationship("Department")
    reviewed_by: Mapped["User | None"] = relationship("User", foreign_keys=[reviewed_by_id])


# ======================
# Notification
# ======================

class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        CheckConstraint(
            "(is_read = false AND read_at IS NULL) OR (is_read = true AND read_at IS NOT NULL)",
            name="chk_notification_read",
        ),
        Index("idx_notifications_user_read", "user_id", "is_read"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    type: Mapped[NotificationType] = mapped_column(
        _enum_column(NotificationType, "notification_type"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="notifications")
