from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import crud
import inventory
from dependencies import get_db
from errors import ItemNotFound
from models import Item, ItemIn, ItemUpdate

router = APIRouter()


@router.get("/items", response_model=list[Item])
def list_items_api(db: Session = Depends(get_db)):
    return crud.list_items(db)


@router.post("/items", response_model=Item, status_code=201)
def add_item_api(
    body: ItemIn,
    db: Session = Depends(get_db),
):
    return inventory.add_item(db, body)


@router.get("/items/{item_id}", response_model=Item)
def get_item_api(
    item_id: str,
    db: Session = Depends(get_db),
):
    item = crud.get_item(db, item_id)
    if not item:
        raise ItemNotFound(item_id)
    return item


@router.patch("/items/{item_id}", response_model=Item)
def edit_item_api(
    item_id: str,
    body: ItemUpdate,
    db: Session = Depends(get_db),
):
    return inventory.edit_item(db, item_id, body)


@router.delete("/items/{item_id}", status_code=204)
def remove_item_api(
    item_id: str,
    db: Session = Depends(get_db),
):
    inventory.remove_item(db, item_id)
    return None
