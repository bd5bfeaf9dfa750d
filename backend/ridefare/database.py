"""Database models and setup for RideFare system."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional
import logging
import os

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Integer,
    Numeric,
    String,
    create_engine,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ridefare.config import DEFAULT_RATE_TABLE
from ridefare.errors import AccountNotFound, UnsupportedServiceType
from ridefare.models import (
    CorporateAccount,
    LedgerEntry,
    ServiceRate,
    ServiceType,
    _normalize_choice,
)
from ridefare.services.ledger import apply_charge, apply_top_up, to_amount

logger = logging.getLogger(__name__)

Base = declarative_base()

DEFAULT_SYSTEM_CONFIG = {
    "max_trips_per_booking": ("31", "Maximum number of trips in one booking"),
    "commission_rate": ("0.15", "Platform commission taken from driver fares"),
}


class ServicePricingDB(Base):
    """Database model for storing the rate table entry of a service."""
    __tablename__ = "service_pricing"

    id = Column(Integer, primary_key=True, index=True)
    service_type = Column(String, unique=True, nullable=False)
    base_fare = Column(Numeric(10, 2), nullable=False)
    per_km_rate = Column(Numeric(10, 2), nullable=False)
    min_distance_km = Column(Numeric(10, 2), nullable=False)
    round_trip_multiplier = Column(Numeric(5, 2), nullable=False)
    task_fare = Column(Numeric(10, 2), nullable=True)
    vehicle_prices = Column(JSON, nullable=False, default=dict)
    size_multipliers = Column(JSON, nullable=False, default=dict)

    def to_rate(self) -> ServiceRate:
        return ServiceRate(
            base_fare=Decimal(str(self.base_fare)),
            per_km_rate=Decimal(str(self.per_km_rate)),
            min_distance_km=Decimal(str(self.min_distance_km)),
            round_trip_multiplier=Decimal(str(self.round_trip_multiplier)),
            task_fare=Decimal(str(self.task_fare)) if self.task_fare is not None else None,
            vehicle_prices=self.vehicle_prices or {},
            size_multipliers=self.size_multipliers or {},
        )

    def __repr__(self):
        return f"<ServicePricing(service_type={self.service_type}, base_fare={self.base_fare})>"


class SystemConfigDB(Base):
    """Database model for storing system configuration."""
    __tablename__ = "system_config"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String, unique=True, nullable=False)
    value = Column(String, nullable=False)
    description = Column(String, nullable=True)

    def __repr__(self):
        return f"<SystemConfig(key={self.key}, value={self.value})>"


class CorporateAccountDB(Base):
    """Database model for corporate credit balances."""
    __tablename__ = "corporate_accounts"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String, unique=True, nullable=False)
    credit_balance = Column(Numeric(12, 2), nullable=False, default=0)
    low_balance_threshold = Column(Numeric(12, 2), nullable=False, default=100)

    def to_account(self) -> CorporateAccount:
        return CorporateAccount(
            company_id=self.company_id,
            credit_balance=Decimal(str(self.credit_balance)),
            low_balance_threshold=Decimal(str(self.low_balance_threshold)),
        )


class CreditTransactionDB(Base):
    """Database model for corporate credit movements."""
    __tablename__ = "credit_transactions"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String, nullable=False, index=True)
    transaction_type = Column(String, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    balance_before = Column(Numeric(12, 2), nullable=False)
    balance_after = Column(Numeric(12, 2), nullable=False)
    ride_reference = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    def to_entry(self) -> LedgerEntry:
        return LedgerEntry(
            company_id=self.company_id,
            transaction_type=self.transaction_type,
            amount=Decimal(str(self.amount)),
            balance_before=Decimal(str(self.balance_before)),
            balance_after=Decimal(str(self.balance_after)),
            ride_reference=self.ride_reference,
        )


def _rate_columns(rate: ServiceRate) -> dict:
    """Flatten a ServiceRate into column values (JSON maps hold strings)."""
    return {
        "base_fare": rate.base_fare,
        "per_km_rate": rate.per_km_rate,
        "min_distance_km": rate.min_distance_km,
        "round_trip_multiplier": rate.round_trip_multiplier,
        "task_fare": rate.task_fare,
        "vehicle_prices": {k.value: str(v) for k, v in rate.vehicle_prices.items()},
        "size_multipliers": {k.value: str(v) for k, v in rate.size_multipliers.items()},
    }


def _service_key(service_type) -> str:
    try:
        return ServiceType(_normalize_choice(service_type)).value
    except ValueError as e:
        raise UnsupportedServiceType(service_type) from e


class DatabaseManager:
    """Manager class for database operations."""

    def __init__(self, database_url: Optional[str] = None):
        """Initialize database connection."""
        self.database_url = database_url or os.getenv(
            "DATABASE_URL",
            "sqlite:///./ridefare.db"
        )

        # Create engine with appropriate settings for SQLite
        connect_args = {"check_same_thread": False} if "sqlite" in self.database_url else {}
        self.engine = create_engine(self.database_url, connect_args=connect_args)

        # Create session factory
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

        # Create tables if they don't exist
        Base.metadata.create_all(bind=self.engine)

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    def init_default_pricing(self):
        """Seed the rate table and system config if they are empty."""
        session = self.get_session()
        try:
            if session.query(ServicePricingDB).count() == 0:
                for service_type, rate in DEFAULT_RATE_TABLE.items():
                    session.add(ServicePricingDB(service_type=service_type.value, **_rate_columns(rate)))
                session.commit()
                logger.info("Initialized %d default service rates", len(DEFAULT_RATE_TABLE))

            for key, (value, description) in DEFAULT_SYSTEM_CONFIG.items():
                existing = session.query(SystemConfigDB).filter_by(key=key).first()
                if not existing:
                    session.add(SystemConfigDB(key=key, value=value, description=description))
            session.commit()
        finally:
            session.close()

    def reset_pricing(self):
        """Replace every stored rate with the static defaults."""
        session = self.get_session()
        try:
            session.query(ServicePricingDB).delete()
            session.commit()
        finally:
            session.close()
        self.init_default_pricing()

    def get_all_service_rates(self) -> Dict[ServiceType, ServiceRate]:
        """Retrieve every stored service rate."""
        session = self.get_session()
        try:
            rows = session.query(ServicePricingDB).all()
            return {
                ServiceType(row.service_type): row.to_rate()
                for row in rows
                if row.service_type in ServiceType._value2member_map_
            }
        finally:
            session.close()

    def get_service_rate(self, service_type) -> Optional[ServiceRate]:
        """Get the stored rate for one service, or None."""
        session = self.get_session()
        try:
            row = session.query(ServicePricingDB).filter_by(
                service_type=_service_key(service_type)
            ).first()
            return row.to_rate() if row else None
        finally:
            session.close()

    def update_service_rate(self, service_type, **fields) -> ServiceRate:
        """
        Update or create the rate of a service.

        Fields left out keep their stored value (or the static default when
        the service has no row yet).
        """
        key = _service_key(service_type)
        session = self.get_session()
        try:
            row = session.query(ServicePricingDB).filter_by(service_type=key).first()
            current = row.to_rate() if row else DEFAULT_RATE_TABLE[ServiceType(key)]
            updates = {k: v for k, v in fields.items() if v is not None}
            merged = current.model_dump()
            for column, value in updates.items():
                if column in ("vehicle_prices", "size_multipliers"):
                    merged[column] = {**merged[column], **value}
                else:
                    merged[column] = value
            rate = ServiceRate.model_validate(merged)

            if row is None:
                row = ServicePricingDB(service_type=key)
                session.add(row)
            for column, value in _rate_columns(rate).items():
                setattr(row, column, value)
            session.commit()
            logger.info("Updated %s rate: %s", key, updates)
            return rate
        finally:
            session.close()

    def get_config_value(self, key: str) -> Optional[str]:
        """Get a configuration value by key."""
        session = self.get_session()
        try:
            config = session.query(SystemConfigDB).filter_by(key=key).first()
            return config.value if config else None
        finally:
            session.close()

    def set_config_value(self, key: str, value: str, description: Optional[str] = None):
        """Create or update a configuration value."""
        session = self.get_session()
        try:
            config = session.query(SystemConfigDB).filter_by(key=key).first()
            if config:
                config.value = value
            else:
                session.add(SystemConfigDB(key=key, value=value, description=description))
            session.commit()
        finally:
            session.close()

    def get_account(self, company_id: str) -> CorporateAccount:
        """Get a corporate account, raising AccountNotFound if missing."""
        session = self.get_session()
        try:
            row = session.query(CorporateAccountDB).filter_by(company_id=company_id).first()
            if row is None:
                raise AccountNotFound(company_id)
            return row.to_account()
        finally:
            session.close()

    def upsert_account(
        self,
        company_id: str,
        credit_balance: Optional[Decimal] = None,
        low_balance_threshold: Optional[Decimal] = None,
    ) -> CorporateAccount:
        """Create a corporate account or change its balance and threshold."""
        session = self.get_session()
        try:
            row = session.query(CorporateAccountDB).filter_by(company_id=company_id).first()
            if row is None:
                row = CorporateAccountDB(
                    company_id=company_id,
                    credit_balance=Decimal("0.00"),
                    low_balance_threshold=Decimal("100.00"),
                )
                session.add(row)
            if credit_balance is not None:
                row.credit_balance = credit_balance
            if low_balance_threshold is not None:
                row.low_balance_threshold = low_balance_threshold
            session.commit()
            return row.to_account()
        finally:
            session.close()

    def record_charge(
        self, company_id: str, amount, ride_reference: Optional[str] = None
    ) -> LedgerEntry:
        """Deduct a trip fare from a corporate account and log the transaction."""
        amount = to_amount(amount)
        return self._move_credit(
            company_id,
            -amount,
            lambda account: apply_charge(account, amount, ride_reference=ride_reference),
        )

    def record_top_up(self, company_id: str, amount) -> LedgerEntry:
        """Add credit to a corporate account and log the transaction."""
        amount = to_amount(amount)
        return self._move_credit(
            company_id, amount, lambda account: apply_top_up(account, amount)
        )

    def _move_credit(
        self,
        company_id: str,
        change: Decimal,
        apply: Callable[[CorporateAccount], LedgerEntry],
    ) -> LedgerEntry:
        """
        Change a balance and log the movement in one transaction.

        The balance is updated relative to its stored value, so concurrent
        writers never overwrite each other. The entry is built from the
        balance the update actually started from.
        """
        session = self.get_session()
        try:
            row = (
                session.query(CorporateAccountDB)
                .filter_by(company_id=company_id)
                .with_for_update()
                .first()
            )
            if row is None:
                raise AccountNotFound(company_id)

            session.query(CorporateAccountDB).filter_by(company_id=company_id).update(
                {CorporateAccountDB.credit_balance: CorporateAccountDB.credit_balance + change},
                synchronize_session=False,
            )
            session.refresh(row)
            account = row.to_account()
            before = account.credit_balance - change
            entry = apply(account.model_copy(update={"credit_balance": before}))

            session.add(CreditTransactionDB(
                company_id=entry.company_id,
                transaction_type=entry.transaction_type,
                amount=entry.amount,
                balance_before=entry.balance_before,
                balance_after=entry.balance_after,
                ride_reference=entry.ride_reference,
            ))
            session.commit()
            return entry
        finally:
            session.close()

    def list_transactions(self, company_id: str) -> List[LedgerEntry]:
        """Credit movements of an account, oldest first."""
        session = self.get_session()
        try:
            rows = (
                session.query(CreditTransactionDB)
                .filter_by(company_id=company_id)
                .order_by(CreditTransactionDB.id)
                .all()
            )
            return [row.to_entry() for row in rows]
        finally:
            session.close()


# Singleton instance
_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """Get singleton database manager instance."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
        _db_manager.init_default_pricing()
    return _db_manager
