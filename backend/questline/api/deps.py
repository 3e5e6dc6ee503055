from questline.room.game_manager import GameManager

game_manager = GameManager()
