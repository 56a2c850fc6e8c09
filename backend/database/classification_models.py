"""
Journal Classification Core - Database Models

Tables:
- accounts: chart of accounts with nature and correction-object tag
- koreksi_rules / obyek_rules: keyword -> label rules
- withholding_tax_rules: keyword -> (tax type, rate)
- tax_keywords: keyword -> input/output VAT category
- upload_sessions: one uploaded file (a processing batch)
- transaction_data: journal rows plus derived classification fields
- processing_progress: last published progress percentage per key
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, Boolean, Date, DateTime,
    ForeignKey, Index, Numeric
)

from database.connection import Base
from models.enums import SessionStatus


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# Money columns; the tax buckets are nullable (NULL = not applicable)
MONEY = Numeric(18, 2)


# ==================== REFERENCE DATA ====================

class AccountDB(Base):
    """Chart of accounts. Looked up by account_code during classification."""
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_code = Column(String(50), nullable=False, unique=True, index=True)
    account_name = Column(String(255), nullable=False)
    account_type = Column(String(50), nullable=True)
    nature = Column(String(50), nullable=True)  # Asset, Liability, Equity, Revenue, Expense

    # Correction-object tag: "Wth 21 Cr", "PK Cr", "PM DB", ...
    koreksi_obyek = Column(String(100), nullable=True)
    analisa_tambahan = Column(Text, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class KoreksiRuleDB(Base):
    __tablename__ = "koreksi_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    keyword = Column(String(255), nullable=False)
    value = Column(String(255), nullable=False)
    not_value = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class ObyekRuleDB(Base):
    __tablename__ = "obyek_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    keyword = Column(String(255), nullable=False)
    value = Column(String(255), nullable=False)
    not_value = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class WithholdingTaxRuleDB(Base):
    __tablename__ = "withholding_tax_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    keyword = Column(String(255), nullable=False)
    tax_type = Column(String(20), nullable=False)  # wth_21, wth_23, wth_26, wth_4_2, wth_15
    tax_rate = Column(Numeric(9, 6), nullable=False)
    priority = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class TaxKeywordDB(Base):
    __tablename__ = "tax_keywords"

    id = Column(Integer, primary_key=True, autoincrement=True)
    keyword = Column(String(255), nullable=False)
    tax_category = Column(String(20), nullable=False)  # input_tax, output_tax
    priority = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


# ==================== UPLOADS ====================

class UploadSessionDB(Base):
    """
    One uploaded journal file. Created by the upload layer once all rows
    are stored; mutated only by the batch processor (and by cancel).
    """
    __tablename__ = "upload_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_code = Column(String(64), nullable=False, unique=True, index=True)
    user_id = Column(Integer, nullable=True)
    filename = Column(String(255), nullable=True)

    total_rows = Column(Integer, nullable=False, default=0)
    processed_rows = Column(Integer, nullable=False, default=0)
    failed_rows = Column(Integer, nullable=False, default=0)

    status = Column(String(20), nullable=False, default=SessionStatus.uploaded.value, index=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class TransactionDataDB(Base):
    """Journal row as uploaded, plus the fields derived by processing."""
    __tablename__ = "transaction_data"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    session_id = Column(Integer, ForeignKey("upload_sessions.id", ondelete="CASCADE"), nullable=False)

    # Input fields
    document_type = Column(String(50), nullable=True)
    document_number = Column(String(100), nullable=True)
    posting_date = Column(Date, nullable=True)
    account = Column(String(50), nullable=True)
    account_name = Column(String(255), nullable=True)
    keterangan = Column(Text, nullable=True)
    debet = Column(MONEY, nullable=False, default=0)
    credit = Column(MONEY, nullable=False, default=0)
    net = Column(MONEY, nullable=False, default=0)

    # Derived fields
    analisa_nature_akun = Column(String(255), nullable=True)
    koreksi = Column(String(255), nullable=True)
    obyek = Column(String(255), nullable=True)
    analisa_koreksi_obyek = Column(String(512), nullable=True)
    wth_21_cr = Column(MONEY, nullable=True)
    wth_23_cr = Column(MONEY, nullable=True)
    wth_26_cr = Column(MONEY, nullable=True)
    wth_4_2_cr = Column(MONEY, nullable=True)
    wth_15_cr = Column(MONEY, nullable=True)
    pk_cr = Column(MONEY, nullable=True)
    pm_db = Column(MONEY, nullable=True)
    um_pajak_db = Column(MONEY, nullable=True)
    analisa_tambahan = Column(Text, nullable=True)

    # Processing
    is_processed = Column(Boolean, nullable=False, default=False)
    processing_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    __table_args__ = (
        Index('ix_transaction_data_session_processed', 'session_id', 'is_processed', 'id'),
        Index('ix_transaction_data_session_document', 'session_id', 'document_number'),
    )


class ProcessingProgressDB(Base):
    """Key/value progress surface polled by clients. Last write wins."""
    __tablename__ = "processing_progress"

    key = Column(String(128), primary_key=True)
    percentage = Column(Numeric(5, 2), nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
