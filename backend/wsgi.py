from cafestock import create_app

app = create_app()
