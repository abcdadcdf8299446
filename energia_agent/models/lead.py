from sqlalchemy import Boolean, Column, DateTime, Float, Integer, Text

from energia_agent.database import Base


class Lead(Base):
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    contact_id = Column(Text, nullable=False, unique=True, index=True)  # whatsapp number
    stage = Column(Integer, nullable=False, default=0, index=True)
    interest_level = Column(Text)  # Baixo, Médio, Alto, Quente, Precisa de Intervenção Humana
    source = Column(Text, default="Organico")
    protocol = Column(Text)

    name = Column(Text)
    tax_id = Column(Text)  # CPF/CNPJ
    email = Column(Text)
    address = Column(Text)
    address_street = Column(Text)
    address_number = Column(Text)
    address_district = Column(Text)
    address_city = Column(Text)
    address_state = Column(Text)
    average_consumption = Column(Float)  # kWh
    lighting_fee = Column(Float)
    connection_type = Column(Text)  # MONOFASICO, BIFASICO, TRIFASICO
    summary = Column(Text)

    bill_holder_name = Column(Text)
    bill_holder_document = Column(Text)

    proposal_sent = Column(Boolean, nullable=False, default=False)
    proposal_sent_at = Column(DateTime(timezone=True))
    proposal_session_id = Column(Text)

    last_interaction_at = Column(DateTime(timezone=True), index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
