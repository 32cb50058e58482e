"""Sites API — register storefronts and their REST credentials."""

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from sqlalchemy.orm import Session

from ..database import get_db
from ..models import Site
from ..schemas.sync import SiteCreate, SiteOut, SiteUpdate

router = APIRouter(tags=["sites"])


@router.get("/api/sites", response_model=list[SiteOut])
def list_sites(db: Session = Depends(get_db)):
    return db.query(Site).order_by(Site.name).all()


@router.post("/api/sites", response_model=SiteOut, status_code=201)
def create_site(body: SiteCreate, db: Session = Depends(get_db)):
    site = Site(**body.model_dump())
    db.add(site)
    db.commit()
    db.refresh(site)
    logger.info("Site #{} registered: {}", site.id, site.url)
    return site


@router.patch("/api/sites/{site_id}", response_model=SiteOut)
def update_site(site_id: int, body: SiteUpdate, db: Session = Depends(get_db)):
    site = db.get(Site, site_id)
    if site is None:
        raise HTTPException(404, f"Site {site_id} not found")
    for key, value in body.model_dump(exclude_unset=True).items():
        setattr(site, key, value)
    db.commit()
    return site
