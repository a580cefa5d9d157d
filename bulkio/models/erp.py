"""
Reference ERP entities written by the bundled module adapters.

A real deployment points its adapters at its own tables; these exist so
every module has a concrete store to import into and export from.
"""
from sqlalchemy import Column, Integer, String, DateTime, Date, ForeignKey, Numeric, Boolean, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from bulkio.core.database import Base
from bulkio.core.timeutil import utcnow


class Warehouse(Base):
    __tablename__ = "warehouses"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    location = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    items = relationship("StockItem", back_populates="warehouse")


class StockItem(Base):
    __tablename__ = "stock_items"

    id = Column(Integer, primary_key=True, index=True)
    item_code = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=False)
    unit = Column(String, nullable=False)
    unit_price = Column(Numeric(14, 2), nullable=True)
    reorder_level = Column(Integer, default=0, nullable=False)
    max_stock_level = Column(Integer, nullable=True)
    current_quantity = Column(Integer, default=0, nullable=False)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False)
    barcode = Column(String, nullable=True)
    supplier = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    warehouse = relationship("Warehouse", back_populates="items")


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(Integer, primary_key=True, index=True)
    supplier_code = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    contact_person = Column(String, nullable=True)
    email = Column(String, nullable=True, index=True)
    phone = Column(String, nullable=True)
    address = Column(Text, nullable=True)
    city = Column(String, nullable=True)
    country = Column(String, nullable=True)
    tax_id = Column(String, nullable=True)
    payment_terms = Column(String, nullable=True)
    category = Column(String, nullable=True)
    rating = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, unique=True, nullable=False, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    date_of_birth = Column(Date, nullable=True)
    department = Column(String, nullable=True)
    position = Column(String, nullable=True)
    employment_type = Column(String, nullable=True)
    status = Column(String, default="ACTIVE", nullable=False)
    hire_date = Column(Date, nullable=True)
    salary = Column(Numeric(14, 2), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    project_code = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, default="PLANNING", nullable=False)
    priority = Column(String, default="MEDIUM", nullable=False)
    location = Column(String, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    estimated_budget = Column(Numeric(16, 2), nullable=True)
    progress = Column(Integer, default=0, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    tasks = relationship("ProjectTask", back_populates="project")


class ProjectTask(Base):
    __tablename__ = "project_tasks"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, default="TODO", nullable=False)
    priority = Column(String, default="MEDIUM", nullable=False)
    assigned_to = Column(String, nullable=True)
    due_date = Column(Date, nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    project = relationship("Project", back_populates="tasks")

    __table_args__ = (
        UniqueConstraint("project_id", "title", name="uq_project_task_title"),
    )


class Asset(Base):
    __tablename__ = "assets"

    id = Column(Integer, primary_key=True, index=True)
    asset_code = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=False)
    manufacturer = Column(String, nullable=True)
    model = Column(String, nullable=True)
    serial_number = Column(String, nullable=True)
    purchase_date = Column(Date, nullable=True)
    purchase_price = Column(Numeric(14, 2), nullable=True)
    current_value = Column(Numeric(14, 2), nullable=True)
    location = Column(String, nullable=True)
    status = Column(String, default="ACTIVE", nullable=False)
    condition = Column(String, default="GOOD", nullable=False)
    assigned_to = Column(String, nullable=True)
    warranty_expiry = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
