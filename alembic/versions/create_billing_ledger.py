"""billing ledger: contract registry, invoices, payments and allocations

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19

"""
from datetime import datetime

from alembic import op
import sqlalchemy as sa


revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None


CONTRACT_STATES = ("ACTIVE", "FINALIZED", "RESCINDED", "CANCELLED")
INVOICE_STATES = ("OPEN", "PARTIAL", "PAID", "OVERDUE", "VOID")


def _timestamps():
    return [
        sa.Column("creado_el", sa.DateTime(), nullable=False),
        sa.Column("actualizado_el", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    # Contract registry (owned by the administration side, read here)
    op.create_table(
        "propiedades",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("codigo", sa.String(32), nullable=False),
        sa.Column("titulo", sa.String(160), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("codigo"),
    )
    op.create_index("ix_propiedades_id", "propiedades", ["id"])

    op.create_table(
        "inquilinos",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("nombre_completo", sa.String(120), nullable=False),
        sa.Column("nit", sa.String(20), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_inquilinos_id", "inquilinos", ["id"])

    op.create_table(
        "contratos",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("propiedad_id", sa.UUID(), nullable=False),
        sa.Column("inquilino_id", sa.UUID(), nullable=False),
        sa.Column("renta_mensual", sa.Numeric(12, 2), nullable=False),
        sa.Column("estado", sa.Enum(*CONTRACT_STATES, name="contract_state"), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["propiedad_id"], ["propiedades.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["inquilino_id"], ["inquilinos.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_contratos_id", "contratos", ["id"])
    op.create_index("ix_contratos_propiedad_id", "contratos", ["propiedad_id"])
    op.create_index("ix_contratos_inquilino_id", "contratos", ["inquilino_id"])
    op.create_index("ix_contratos_estado", "contratos", ["estado"])

    op.create_table(
        "formas_pago",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("codigo", sa.String(32), nullable=False),
        sa.Column("nombre", sa.String(80), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("codigo"),
    )

    # Billing ledger
    op.create_table(
        "facturas",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("contrato_id", sa.UUID(), nullable=False),
        sa.Column("anio_periodo", sa.Integer(), nullable=False),
        sa.Column("mes_periodo", sa.Integer(), nullable=False),
        sa.Column("fecha_emision", sa.Date(), nullable=False),
        sa.Column("fecha_vencimiento", sa.Date(), nullable=False),
        sa.Column("numero_factura", sa.String(40), nullable=True),
        sa.Column("nit", sa.String(20), nullable=True),
        sa.Column("detalle", sa.String(255), nullable=False),
        sa.Column("monto_total", sa.Numeric(12, 2), nullable=False),
        sa.Column("saldo_pendiente", sa.Numeric(12, 2), nullable=False),
        sa.Column("estado", sa.Enum(*INVOICE_STATES, name="invoice_state"), nullable=False),
        sa.Column("creado_por", sa.UUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["contrato_id"], ["contratos.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("contrato_id", "anio_periodo", "mes_periodo", name="uq_facturas_contrato_periodo"),
        sa.CheckConstraint("saldo_pendiente >= 0", name="ck_facturas_saldo_no_negativo"),
        sa.CheckConstraint("saldo_pendiente <= monto_total", name="ck_facturas_saldo_max_total"),
    )
    op.create_index("ix_facturas_id", "facturas", ["id"])
    op.create_index("ix_facturas_contrato_id", "facturas", ["contrato_id"])
    op.create_index("ix_facturas_fecha_vencimiento", "facturas", ["fecha_vencimiento"])
    op.create_index("ix_facturas_estado", "facturas", ["estado"])
    op.create_index("ix_facturas_creado_por", "facturas", ["creado_por"])

    op.create_table(
        "pagos",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("contrato_id", sa.UUID(), nullable=False),
        sa.Column("forma_pago_id", sa.Integer(), nullable=False),
        sa.Column("fecha_pago", sa.Date(), nullable=False),
        sa.Column("referencia", sa.String(80), nullable=True),
        sa.Column("monto", sa.Numeric(12, 2), nullable=False),
        sa.Column("saldo_no_aplicado", sa.Numeric(12, 2), nullable=False),
        sa.Column("notas", sa.String(255), nullable=True),
        sa.Column("creado_por", sa.UUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["contrato_id"], ["contratos.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["forma_pago_id"], ["formas_pago.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("monto > 0", name="ck_pagos_monto_positivo"),
        sa.CheckConstraint("saldo_no_aplicado >= 0", name="ck_pagos_saldo_no_negativo"),
        sa.CheckConstraint("saldo_no_aplicado <= monto", name="ck_pagos_saldo_max_monto"),
    )
    op.create_index("ix_pagos_id", "pagos", ["id"])
    op.create_index("ix_pagos_contrato_id", "pagos", ["contrato_id"])
    op.create_index("ix_pagos_forma_pago_id", "pagos", ["forma_pago_id"])
    op.create_index("ix_pagos_fecha_pago", "pagos", ["fecha_pago"])
    op.create_index("ix_pagos_creado_por", "pagos", ["creado_por"])

    op.create_table(
        "aplicaciones_pago",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("pago_id", sa.UUID(), nullable=False),
        sa.Column("factura_id", sa.UUID(), nullable=False),
        sa.Column("monto_aplicado", sa.Numeric(12, 2), nullable=False),
        sa.Column("creado_por", sa.UUID(), nullable=True),
        sa.Column("revertido_el", sa.DateTime(), nullable=True),
        sa.Column("revertido_por", sa.UUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["pago_id"], ["pagos.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["factura_id"], ["facturas.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("monto_aplicado > 0", name="ck_aplicaciones_monto_positivo"),
    )
    op.create_index("ix_aplicaciones_pago_id", "aplicaciones_pago", ["id"])
    op.create_index("ix_aplicaciones_pago_pago_id", "aplicaciones_pago", ["pago_id"])
    op.create_index("ix_aplicaciones_pago_factura_id", "aplicaciones_pago", ["factura_id"])
    op.create_index("ix_aplicaciones_pago_revertido_el", "aplicaciones_pago", ["revertido_el"])

    # Seed payment methods
    formas_pago = sa.table(
        "formas_pago",
        sa.column("codigo", sa.String),
        sa.column("nombre", sa.String),
        sa.column("creado_el", sa.DateTime),
        sa.column("actualizado_el", sa.DateTime),
    )
    now = datetime.utcnow()
    op.bulk_insert(
        formas_pago,
        [
            {**row, "creado_el": now, "actualizado_el": now}
            for row in (
                {"codigo": "EFECTIVO", "nombre": "Efectivo"},
                {"codigo": "TRANSFERENCIA", "nombre": "Transferencia bancaria"},
                {"codigo": "CHEQUE", "nombre": "Cheque"},
                {"codigo": "DEPOSITO", "nombre": "Depósito bancario"},
            )
        ],
    )


def downgrade() -> None:
    op.drop_table("aplicaciones_pago")
    op.drop_table("pagos")
    op.drop_table("facturas")
    op.drop_table("formas_pago")
    op.drop_table("contratos")
    op.drop_table("inquilinos")
    op.drop_table("propiedades")
    sa.Enum(name="invoice_state").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="contract_state").drop(op.get_bind(), checkfirst=True)
