"""Seed knowledge about buying property in Portugal, indexed into the knowledge collection."""
from typing import List

from pydantic import BaseModel


class KnowledgeDocument(BaseModel):
    id: str
    title: str
    content: str
    category: str
    tags: List[str] = []


PORTUGAL_REAL_ESTATE_KNOWLEDGE: List[KnowledgeDocument] = [
    # Buying process
    KnowledgeDocument(
        id="buying-process-overview",
        title="Buying Property in Portugal - Overview",
        content="""The process of buying property in Portugal typically involves these steps:
1. Get a NIF (Numero de Identificacao Fiscal), the Portuguese tax number required for any financial transaction
2. Open a Portuguese bank account (recommended but not required)
3. Find a property through agents, websites, or direct search
4. Make an offer and negotiate the price
5. Sign a Promissory Contract (CPCV) with a deposit (usually 10-20%)
6. Due diligence: verify property registration, debts, licenses
7. Sign the final deed (Escritura) at a notary
8. Register the property at the Land Registry (Conservatoria)
9. Pay taxes: IMT (transfer tax) and Stamp Duty""",
        category="buying-process",
        tags=["buying", "process", "steps", "how-to", "purchase"],
    ),
    KnowledgeDocument(
        id="nif-tax-number",
        title="NIF - Portuguese Tax Number",
        content="""The NIF (Numero de Identificacao Fiscal) is essential for buying property in Portugal.
- EU citizens can apply directly at any Tax Office (Financas)
- Non-EU citizens need a fiscal representative (can be a lawyer or accountant)
- Required documents: passport, proof of address
- Can be obtained in person or through a representative
- Cost: free in person, €100-300 through a representative
- Processing time: usually immediate in person, 1-2 weeks through a representative""",
        category="buying-process",
        tags=["nif", "tax", "documents", "requirements"],
    ),
    KnowledgeDocument(
        id="imt-transfer-tax",
        title="IMT - Property Transfer Tax",
        content="""IMT (Imposto Municipal sobre Transmissoes) is the main tax when buying property in Portugal.
Rates for residential property (mainland Portugal):
- Up to €97,064: 0%
- €97,064 - €132,774: 2%
- €132,774 - €181,034: 5%
- €181,034 - €301,688: 7%
- €301,688 - €578,598: 8%
- €578,598 - €1,050,400: 6% (single rate)
- Over €1,050,400: 7.5%
Rural land: 5% flat rate
Rates are lower for permanent residence and higher for second homes.
IMT must be paid before signing the deed.""",
        category="taxes",
        tags=["imt", "tax", "transfer", "costs", "rates"],
    ),
    KnowledgeDocument(
        id="stamp-duty",
        title="Stamp Duty (Imposto de Selo)",
        content="""Stamp Duty is an additional tax when buying property in Portugal.
- Rate: 0.8% of the property value or tax value (whichever is higher)
- Paid together with IMT before the deed
- Also applies to mortgage contracts (0.6% on the loan amount)
- No exemptions for first-time buyers
Example: for a €100,000 property, stamp duty is €800""",
        category="taxes",
        tags=["stamp", "duty", "tax", "costs"],
    ),
    # Regions
    KnowledgeDocument(
        id="regions-algarve",
        title="Algarve Region - Property Guide",
        content="""The Algarve is Portugal's southernmost region, famous for tourism and expat communities.
Popular areas:
- Lagos: historic town, great beaches, mid-range prices
- Albufeira: tourist hub, lots of amenities, higher prices
- Tavira: quieter, traditional, good value
- Faro: regional capital, airport, more local feel
- Vilamoura: luxury marina, golf, premium prices
Property types: apartments, villas, townhouses, golf properties
Price range: €150,000-500,000 for apartments, €300,000-2M+ for villas
Climate: 300+ sunny days, mild winters, hot summers
Considerations: tourist-heavy, seasonal rental potential, international community""",
        category="regions",
        tags=["algarve", "south", "coast", "beach", "tourism", "lagos", "albufeira", "tavira", "faro"],
    ),
    KnowledgeDocument(
        id="regions-lisbon",
        title="Lisbon Region - Property Guide",
        content="""Lisbon is Portugal's capital and largest city, with diverse property options.
Popular areas:
- Lisbon City: historic neighborhoods, apartments, €3,000-8,000/sqm
- Cascais: upscale coastal town, €4,000-10,000/sqm
- Sintra: UNESCO heritage, palaces, nature, €2,500-5,000/sqm
- Setubal Peninsula: more affordable, beaches, €1,500-3,000/sqm
- Mafra/Torres Vedras: rural, affordable, €1,000-2,000/sqm
Property types: apartments (most common), townhouses, villas, rural estates
Investment potential: strong rental market, short-term rentals popular
Considerations: higher prices, traffic, excellent infrastructure""",
        category="regions",
        tags=["lisbon", "capital", "city", "cascais", "sintra", "urban"],
    ),
    KnowledgeDocument(
        id="regions-alentejo",
        title="Alentejo Region - Property Guide",
        content="""Alentejo is Portugal's largest region, known for rural landscapes and affordable property.
Popular areas:
- Evora: UNESCO city, cultural hub
- Beja: agricultural, very affordable
- Alentejo Coast: unspoiled beaches, growing popularity
- Comporta: upscale coastal area, premium prices
Property types: farms (herdades), rural houses (montes), land, ruins for renovation
Price range: €50,000-200,000 for rural properties, land from €5,000/hectare
Climate: hot summers (40°C+), cold winters, low rainfall
Considerations: remote, limited services, great for self-sufficiency and agriculture""",
        category="regions",
        tags=["alentejo", "rural", "farm", "land", "affordable", "evora", "countryside"],
    ),
    KnowledgeDocument(
        id="regions-porto-north",
        title="Porto and Northern Portugal - Property Guide",
        content="""Northern Portugal is greener and more traditional than the south.
Popular areas:
- Porto City: second largest city, UNESCO, €2,500-5,000/sqm
- Vila Nova de Gaia: wine cellars, river views, slightly cheaper
- Braga: historic, growing tech hub
- Guimaraes: medieval, UNESCO, traditional
- Douro Valley: wine region, river, tourism potential
- Minho: green, rural, very affordable
Property types: city apartments, traditional stone houses, quintas (estates)
Price range: generally 30-50% cheaper than Lisbon
Climate: rainy, green, mild summers, cool winters
Considerations: less English spoken, more authentic, good value""",
        category="regions",
        tags=["porto", "north", "douro", "braga", "traditional", "wine"],
    ),
    KnowledgeDocument(
        id="regions-silver-coast",
        title="Silver Coast - Property Guide",
        content="""The Silver Coast (Costa de Prata) stretches from Lisbon to Porto along the Atlantic.
Popular areas:
- Obidos: medieval walled town, charming, touristy
- Caldas da Rainha: spa town, ceramics, affordable
- Nazare: giant waves, fishing village, tourism
- Leiria: regional center, practical
- Figueira da Foz: beach resort
- Aveiro: canals, university
Property types: beach apartments, traditional houses, rural properties
Price range: €100,000-300,000 for most properties
Climate: Atlantic influence, cooler summers, mild winters, some fog
Considerations: good value, authentic, less crowded, surfing""",
        category="regions",
        tags=["silver-coast", "central", "beach", "obidos", "nazare", "affordable"],
    ),
    # Property types
    KnowledgeDocument(
        id="land-buying",
        title="Buying Land in Portugal",
        content="""Land purchase in Portugal has specific considerations.
Types of land:
- Urban (Urbano): designated for construction, more expensive
- Rural (Rustico): agricultural use, harder to build on
- Mixed: some construction rights on rural land
Building permissions:
- Urban land: usually straightforward to build
- Rural land: minimum plot sizes (often 5000+ sqm), may need special permits
- RAN/REN zones: protected agricultural/ecological areas, very restricted
Price ranges:
- Urban plots (Algarve): €50-200/sqm
- Rural land (Alentejo): €1-10/sqm
- Rural land (Central): €3-20/sqm
Key checks:
- Verify caderneta predial (property registration)
- Check PDM (municipal development plan) for zoning
- Confirm access rights (servitude)
- Water and electricity availability
- Any existing structures or ruins""",
        category="property-types",
        tags=["land", "plot", "rural", "urban", "building", "construction", "terreno"],
    ),
    KnowledgeDocument(
        id="construction-land-portugal",
        title="Construction Land Laws in Portugal - Terreno para Construcao",
        content="""Not all land in Portugal can be built on. Land classification decides it.
Land types and buildability:
1. Terreno urbano (urban land) - can build
   - Classified for construction in the municipal plan (PDM)
   - Listed as "urbano" in the Caderneta Predial
   - Has approved building parameters (height, area, usage)
   - Listing keywords: "urbano", "para construcao", "lote", "urbanizavel"
2. Terreno rustico (rural land) - difficult to build
   - Agricultural land, usually no residential building
   - Listed as "rustico" in the Caderneta Predial
   - May only allow agricultural structures (barns, storage)
   - Listing keywords: "rustico", "agricola", "terreno agricola"
3. Mixed / apto para construcao - can build with conditions
   - Rural land with building rights, often older plots
   - Check the PIP (Pedido de Informacao Previa) for exact allowances
Documents to check:
- Caderneta Predial (from Financas): "urbano" means construction allowed
- PDM (Plano Director Municipal): municipal zoning, check at the Camara Municipal
- PIP: pre-approval request, €50-200, 30-60 days, highly recommended before buying
- Alvara de loteamento: plots in approved developments, everything pre-approved
Good signs in listings: "terreno urbano", "lote de terreno", "para construcao",
"viabilidade de construcao", "projeto aprovado", "com alvara", "indice de construcao".
Warning signs: "terreno rustico", "terreno agricola", "RAN", "REN", "area protegida",
no mention of "urbano" or "construcao".
Building permit process: architectural project, submission to the Camara Municipal,
technical evaluation (60-120 days), license fee, Alvara de Construcao.
Price difference: urban plots €30-300/sqm, rural land €1-15/sqm.""",
        category="property-types",
        tags=["construction", "land", "terreno", "urbano", "rustico", "building", "permit", "pdm", "construcao", "lote", "plot"],
    ),
    KnowledgeDocument(
        id="ruins-renovation",
        title="Buying and Renovating Ruins in Portugal",
        content="""Ruins can be excellent value but require careful consideration.
Advantages:
- Low purchase price (€5,000-50,000 typical)
- Often come with land
- Authentic stone construction
Challenges:
- Renovation costs often exceed purchase price (budget €1,000-2,000/sqm)
- Permits can be complex and slow (6-18 months)
- May need architect and engineer
- Remote locations may lack utilities
Key considerations:
- Check if the ruin has a habitation license (more valuable)
- Verify the building footprint can be maintained
- Ensure access to water and electricity
- Get a structural assessment before purchase
- Budget 30% contingency for surprises
Popular areas for ruins: Alentejo, Central Portugal, Interior North""",
        category="property-types",
        tags=["ruins", "renovation", "restore", "reconstruction", "project"],
    ),
    # Visas and residency
    KnowledgeDocument(
        id="golden-visa",
        title="Golden Visa Program",
        content="""Portugal's Golden Visa grants residency through investment.
Investment options (2024+):
- €500,000 in investment funds
- €500,000 in qualifying company shares
- €250,000 in arts/culture
- €500,000 in research activities
- Job creation (10 jobs minimum)
Real estate investment no longer qualifies for the Golden Visa as of 2023.
Benefits: residency for investor and family, Schengen movement, path to permanent
residency and citizenship after 5 years, low presence requirement.
For property buyers the D7 visa (passive income visa) is usually the alternative.""",
        category="visas-residency",
        tags=["golden-visa", "residency", "investment", "visa", "immigration"],
    ),
    KnowledgeDocument(
        id="d7-visa",
        title="D7 Passive Income Visa",
        content="""The D7 visa is popular with retirees and remote workers moving to Portugal.
Requirements:
- Proof of regular passive income (pension, investments, rental income)
- Minimum income: Portuguese minimum wage (€820/month for 2024)
- Recommended: €1,500-2,000/month for comfortable approval
- Accommodation in Portugal (can be rental)
- Clean criminal record and health insurance
Process: apply at a Portuguese consulate, receive a 4-month visa, travel to Portugal,
apply for residence at AIMA, receive a 2-year permit, renew for 3 more years,
then apply for permanent residency or citizenship after 5 years.""",
        category="visas-residency",
        tags=["d7", "visa", "passive-income", "retirement", "residency"],
    ),
    # Taxes
    KnowledgeDocument(
        id="nhr-tax-regime",
        title="NHR - Non-Habitual Resident Tax Regime",
        content="""NHR offered tax benefits for new residents; the program changed in 2024.
Original NHR (before 2024): 10 years of benefits, 20% flat rate on Portuguese income
from qualifying professions, potential exemption on foreign income.
New regime (2024+): replaced by the incentivized tax regime for scientific research
and innovation, narrower criteria, 20% flat rate on qualifying employment income,
10-year duration.
Existing NHR holders keep the old rules for their original 10-year period.
Consult a tax advisor for current rules and eligibility.""",
        category="taxes",
        tags=["nhr", "tax", "non-habitual", "resident", "benefits"],
    ),
    KnowledgeDocument(
        id="annual-property-taxes",
        title="Annual Property Taxes (IMI)",
        content="""IMI (Imposto Municipal sobre Imoveis) is the annual property tax in Portugal.
Rates:
- Urban properties: 0.3% to 0.45% of tax value (VPT)
- Rural properties: 0.8% of tax value
- Rates set by each municipality
The tax value (VPT) is usually lower than market value and reassessed periodically.
Payment is due in April, May or November and can be split in 2-3 installments.
Exemptions: low-income households, 3-year exemption for some primary residences,
rehabilitation projects.
Example: a €200,000 property with €80,000 VPT pays €320/year at 0.4%.""",
        category="taxes",
        tags=["imi", "annual", "tax", "property", "municipal"],
    ),
    # Costs
    KnowledgeDocument(
        id="utilities-costs",
        title="Utilities and Running Costs",
        content="""Typical monthly costs for property in Portugal:
Utilities:
- Electricity: €50-150/month (higher with AC/heating)
- Water: €20-40/month
- Gas (if piped): €20-50/month
- Internet/TV: €30-60/month
Property costs:
- IMI (property tax): typically €200-1000/year
- Condominium fees (apartments): €30-100/month
- Home insurance: €100-300/year
- Maintenance reserve: budget 1% of value/year
Total monthly running costs: small apartment €150-250, house €200-400,
large villa €400-800+.""",
        category="costs",
        tags=["utilities", "costs", "electricity", "water", "monthly", "running"],
    ),
    KnowledgeDocument(
        id="lawyers-notaries",
        title="Lawyers and Notaries in Portugal",
        content="""Professional help is recommended when buying property in Portugal.
Lawyers (Advogados):
- Not legally required but highly recommended
- Handle due diligence, contracts, negotiations
- Costs: €1,000-3,000 for a standard purchase
- Can act as fiscal representative for the NIF
Notaries (Notarios):
- Required for the final deed (Escritura)
- Government-regulated fees, €300-800 for the deed
Other professionals: solicitors (Solicitadores) as a lower-cost alternative,
estate agents (typically paid by the seller, 5% commission), surveyors for old properties.
Always use a lawyer independent from the seller and the agent.""",
        category="buying-process",
        tags=["lawyer", "notary", "legal", "professional", "advogado"],
    ),
    KnowledgeDocument(
        id="mortgage-financing",
        title="Mortgages and Financing",
        content="""Mortgages are available in Portugal for residents and non-residents.
Residents: up to 90% LTV, lower rates, terms up to 40 years.
Non-residents: typically 60-70% LTV, higher rates, terms of 25-30 years.
Rates (2024): variable Euribor + 0.8-1.5%, fixed 3-4%.
Requirements: proof of income (3 years of tax returns), bank statements,
property valuation, life insurance and property insurance.
Process: allow 4-8 weeks for approval; expect 2-3% of the loan value in fees.""",
        category="financing",
        tags=["mortgage", "loan", "bank", "financing", "credit"],
    ),
    KnowledgeDocument(
        id="rental-income",
        title="Rental Income and Regulations",
        content="""Renting out property in Portugal has specific rules and tax implications.
Long-term rentals (Arrendamento):
- Tenant protection laws apply
- Rent increases limited to the inflation coefficient
- Tax: 28% flat rate or progressive
Short-term rentals (Alojamento Local):
- Registration required with the local council
- Restrictions in parts of Lisbon and Porto
- Safety requirements (fire extinguishers and similar)
Gross yields: Lisbon 3-5%, Porto 4-6%, Algarve 4-8% (seasonal), rural 2-4%.
Deductible costs: IMI, condominium, insurance, maintenance, agent fees.
Booking platforms require the AL license number.""",
        category="investment",
        tags=["rental", "income", "investment", "airbnb", "alojamento", "yield"],
    ),
]


def get_all_knowledge() -> List[KnowledgeDocument]:
    return PORTUGAL_REAL_ESTATE_KNOWLEDGE


def get_knowledge_by_category(category: str) -> List[KnowledgeDocument]:
    return [d for d in PORTUGAL_REAL_ESTATE_KNOWLEDGE if d.category == category]


def get_knowledge_by_tags(tags: List[str]) -> List[KnowledgeDocument]:
    wanted = {t.lower() for t in tags}
    return [d for d in PORTUGAL_REAL_ESTATE_KNOWLEDGE if wanted.intersection(d.tags)]


def get_categories() -> List[str]:
    # first-seen order
    return list(dict.fromkeys(d.category for d in PORTUGAL_REAL_ESTATE_KNOWLEDGE))
