from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func

from app.database.base import Base


class License(Base):
    __tablename__ = "licenses"

    id = Column(Integer, primary_key=True, index=True)
    produto = Column(String(255), nullable=False, index=True)
    tipo_licenca = Column(String(255), nullable=True)
    chave_serial = Column(String(255), nullable=False)
    data_expiracao = Column(String(40), nullable=True)
    usuario = Column(String(255), nullable=False)
    cargo = Column(String(255), nullable=True)
    setor = Column(String(255), nullable=True)
    gestor = Column(String(255), nullable=True)
    centro_custo = Column(String(255), nullable=True)
    conta_razao = Column(String(255), nullable=True)
    nome_computador = Column(String(255), nullable=True)
    numero_chamado = Column(String(255), nullable=True)
    observacoes = Column(Text, nullable=True)
    approval_status = Column(String(30), nullable=False, default="approved", index=True)
    rejection_reason = Column(Text, nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
