from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text, func

from app.database.base import Base


class AssetHistoryEvent(Base):
    __tablename__ = "patrimonio_historico"

    id = Column(Integer, primary_key=True, index=True)
    pat_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)
    codigo_pat = Column(String(6), nullable=False, index=True)
    tipo_evento = Column(String(60), nullable=False, index=True)
    campo_alterado = Column(String(80), nullable=True)
    valor_antigo = Column(Text, nullable=True)
    valor_novo = Column(Text, nullable=True)
    detalhes_evento = Column(Text, nullable=True)
    data_evento_real = Column(Date, nullable=True)
    registro_retroativo = Column(Boolean, nullable=False, default=False)
    usuario_modificacao = Column(String(120), nullable=True)
    usuario_nome = Column(String(180), nullable=True)
    data_modificacao = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
